import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from prothomuse.config import get_settings
from prothomuse.database import SessionLocal, init_db
from prothomuse.errors import ProthomuseError
from prothomuse.responses import error_response
from prothomuse.routers import auth_router, metrics_router
from prothomuse.store import EventStore
from prothomuse.telemetry import TelemetryBuffer

settings = get_settings()

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class HealthCheckFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.getMessage().find("/health") == -1


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    init_db()
    logger.info("Prothomuse server ready on %s:%s", settings.host, settings.port)
    yield
    logger.info(
        "Shutting down with %d events buffered in memory", len(app.state.telemetry_buffer)
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Prothomuse",
        description="Health monitoring backend: accounts and streaming request telemetry",
        version="1.0.0",
        lifespan=lifespan,
    )

    # One buffer per application, shared by every streaming connection
    app.state.telemetry_buffer = TelemetryBuffer()
    app.state.event_store = EventStore(SessionLocal)

    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],  # Restrict in production
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(auth_router.router)
    app.include_router(metrics_router.router)

    @app.get("/")
    async def root():
        return {"status": "running", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "prothomuse-health-server"}

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as the JSON envelope, never a stack trace."""

    @app.exception_handler(ProthomuseError)
    async def prothomuse_error_handler(request: Request, exc: ProthomuseError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
            return error_response("Internal server error", exc.status_code)
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg")
        else:
            message = "Invalid request body"
        return error_response(message or "Invalid request body", 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(str(exc.detail), exc.status_code)


setup_logging(settings.log_level)
logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "prothomuse.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
