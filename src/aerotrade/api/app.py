"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aerotrade import __version__
from aerotrade.config import Settings
from aerotrade.engine import ConversationEngine
from aerotrade.notifications.telegram import TelegramNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await app.state.engine.database.init()
    logger.info("API ready")
    yield
    # Shutdown is owned by the Application that created the engine
    logger.info("API stopped")


def create_app(
    engine: ConversationEngine,
    settings: Settings,
    notifier: Optional[TelegramNotifier] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=f"{settings.business_name} API",
        description="Deposit webhook and admin endpoints",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.engine = engine
    app.state.settings = settings
    app.state.notifier = notifier or TelegramNotifier()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from aerotrade.api.routers import admin, health, webhook

    app.include_router(health.router, tags=["Health"])
    app.include_router(webhook.router)
    app.include_router(admin.router)

    return app
