import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from prothomuse.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    """
    SQLite needs check_same_thread=False because sessions cross into the
    threadpool. Postgres gets a bounded pool shared by HTTP requests and
    every streaming connection.
    """
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": settings.db_pool_recycle,
        "pool_pre_ping": True,
    }


engine = create_engine(
    settings.database_url,
    echo=settings.debug and settings.log_level.upper() == "DEBUG",
    **_engine_options(settings.database_url),
)

# Session factory for database operations
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db():
    """
    Dependency that provides database session to route handlers.
    Ensures session is properly closed after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Create the accounts and events tables and their indexes.
    Call this on application startup.
    """
    # Models must be imported so they register on Base.metadata
    from prothomuse import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready")
