from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    environment: str = "development"
    debug: bool = True

    # Signs every bearer token. Changing it invalidates all issued tokens.
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"

    # Bearer token lifetime in hours
    token_expire_hours: int = 24

    # Marks API keys so they are visually distinct from JWTs
    api_key_prefix: str = "pk_"

    database_url: str = "sqlite:///./prothomuse.db"

    # Ignored for SQLite
    db_pool_size: int = 25
    db_max_overflow: int = 5
    db_pool_recycle: int = 300

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Default window for the per-project "recent events" query
    recent_window_seconds: int = 60

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
