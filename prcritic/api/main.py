"""FastAPI application factory for prcritic."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from prcritic.api.routes import agents, analytics, health, jobs, metrics, webhooks
from prcritic.core.config import settings
from prcritic.core.exceptions import PRCriticError
from prcritic.core.logging import configure_logging
from prcritic.core.metrics import initialize_app_info
from prcritic.db.session import close_db, init_db

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    configure_logging()
    initialize_app_info(settings.app_version, settings.environment)
    logger.info(
        "Starting prcritic",
        version=settings.app_version,
        environment=settings.environment,
        llm_provider=settings.default_llm_provider,
        github_app=settings.github_app_configured,
    )

    # Production relies on the Alembic migration
    if settings.environment == "development":
        await init_db()

    yield

    await close_db()
    logger.info("Shutting down prcritic")


def create_app() -> FastAPI:
    """Application factory."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Configurable LLM review agents for GitHub pull requests",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    @app.exception_handler(PRCriticError)
    async def prcritic_exception_handler(request: Request, exc: PRCriticError) -> JSONResponse:
        logger.error("Application error", error=exc.message, details=exc.details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.message, "details": exc.details},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    app.include_router(health.router, tags=["Health"])
    app.include_router(metrics.router)
    app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
    app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
    app.include_router(agents.router, prefix="/agents", tags=["Agents"])
    app.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])

    return app


app = create_app()
