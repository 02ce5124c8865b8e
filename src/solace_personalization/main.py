"""
Solace-AI Personalization - FastAPI Application.

Adaptive personalization service: interaction tracking, context-aware
recommendations, peer matching and engagement-driven refresh scheduling.

Architecture Layer: Infrastructure
Principles: 12-Factor App, Dependency Injection, Configuration Externalization
"""
from __future__ import annotations

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import structlog

from .api import router as personalization_router
from .api import set_dependencies
from .config import Environment, PersonalizationSettings
from .observability import configure_logging, get_correlation_id, set_correlation_id
from .service import PersonalizationService, create_personalization_service

logger = structlog.get_logger(__name__)

_personalization_service: PersonalizationService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global _personalization_service

    settings: PersonalizationSettings = app.state.settings
    logger.info(
        "personalization_service_starting",
        service=settings.service.name,
        env=settings.service.env.value,
    )
    _personalization_service = create_personalization_service(settings)
    await _personalization_service.initialize()
    set_dependencies(_personalization_service)
    logger.info("personalization_service_ready")

    yield

    logger.info("personalization_service_shutdown")
    await _personalization_service.shutdown()
    set_dependencies(None)
    _personalization_service = None


def create_app(settings: PersonalizationSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or PersonalizationSettings.load()
    configure_logging(settings)
    is_production = settings.service.env == Environment.PRODUCTION

    app = FastAPI(
        title="Solace-AI Personalization Service",
        description="Adaptive, context-aware recommendations with safety-first re-ranking",
        version=settings.service.version,
        lifespan=lifespan,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.service.env == Environment.DEVELOPMENT else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(personalization_router)
    _register_middleware(app)

    @app.get("/", tags=["health"])
    async def root():
        """Service information endpoint."""
        return {
            "service": settings.service.name,
            "version": settings.service.version,
            "status": "running",
            "environment": settings.service.env.value,
        }

    @app.get("/health", tags=["health"])
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/ready", tags=["health"])
    async def ready():
        """Readiness check endpoint."""
        if _personalization_service is None:
            return {"status": "not_ready", "reason": "service_not_initialized"}
        return {"status": "ready"}

    return app


def _register_middleware(app: FastAPI) -> None:
    """Register request tracking middleware."""
    @app.middleware("http")
    async def request_tracking_middleware(request: Request, call_next):
        set_correlation_id(request.headers.get("X-Correlation-ID", ""))
        correlation_id = get_correlation_id()
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Process-Time-Ms"] = f"{process_time_ms:.2f}"
        logger.debug("request_completed", path=request.url.path, method=request.method,
                     status_code=response.status_code, process_time_ms=round(process_time_ms, 2))
        return response


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = PersonalizationSettings.load()
    uvicorn.run(
        create_app(settings),
        host=settings.service.host,
        port=settings.service.port,
        log_level=settings.service.log_level.lower(),
    )


if __name__ == "__main__":
    run()
