from __future__ import annotations

import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.db import DATABASE_URL, create_all_tables, engine

# Load environment variables early
load_dotenv()

from app.api import health, health_score, integrations, metrics, sync, webhooks  # noqa: E402
from app.config import Settings, load_settings  # noqa: E402
from app.container import ServiceContainer, build_container  # noqa: E402

logging.basicConfig(
    level=load_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(title="Business Pulse API")
    app.state.container = container
    settings: Settings = container.settings if container is not None else load_settings()

    # CORS setup
    origins = [settings.frontend_origin]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Startup / shutdown hooks
    # -----------------------------------------------------------------------

    @app.on_event("startup")
    async def startup_event():
        """Build services (unless injected) and start the daily scheduler."""
        if app.state.container is None:
            if DATABASE_URL.startswith("sqlite"):
                await create_all_tables()
                logger.info("[Startup] SQLite tables created")
            app.state.container = build_container()
        services: ServiceContainer = app.state.container

        if services.settings.scheduler_enabled:
            await services.scheduler.start()
            logger.info("[Startup] Scheduler service started")
        else:
            logger.info("[Startup] Scheduler disabled")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the scheduler, let background work finish, release connections."""
        services: Optional[ServiceContainer] = app.state.container
        if services is not None:
            await services.shutdown()
            logger.info("[Shutdown] Services stopped")
        await engine.dispose()

    # Include API routers
    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(integrations.router)
    app.include_router(sync.router)
    app.include_router(metrics.router)
    app.include_router(health_score.router)

    return app


app = create_app()
