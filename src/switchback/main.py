"""
Switchback - Main FastAPI Application

Key Features:
- Streaming publish endpoint (newline-delimited JSON)
- Server-Sent Events (SSE) subscriptions with round-robin consumer groups
- Maintenance mode gating of every call except status
"""
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI

from . import __version__
from .api import STATUS_PATH, STREAMING_PATHS, router
from .broker import Backpressure, Broker
from .core.config import Settings, settings as default_settings
from .core.middleware import AvailabilityGate

logger = logging.getLogger(__name__)


def create_broker(settings: Settings) -> Broker:
    """Build a broker from configuration."""
    return Broker(
        mailbox_size=settings.mailbox_size,
        backpressure=Backpressure(settings.backpressure),
    )


def create_app(settings: Optional[Settings] = None, broker: Optional[Broker] = None) -> FastAPI:
    """
    Create the application around one explicitly owned broker.

    Args:
        settings: Configuration; defaults to the environment settings
        broker: Broker instance; built from ``settings`` when omitted
    """
    settings = settings or default_settings
    broker = broker or create_broker(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager.

        Ends every open subscription on shutdown.
        """
        logger.info(f"Broker ready (mailbox size {broker.mailbox_size}, backpressure {broker.backpressure.value})")
        yield
        broker.close()
        logger.info("Broker shutdown complete")

    app = FastAPI(
        title="Switchback",
        description="A lightweight pub/sub event broker",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.broker = broker
    app.state.started = time.monotonic()

    app.add_middleware(
        AvailabilityGate,
        maintenance=settings.maintenance,
        exempt_paths=[STATUS_PATH],
        streaming_paths=STREAMING_PATHS,
    )

    app.include_router(router)

    @app.get("/", tags=["Info"])
    async def root() -> Dict[str, str]:
        """Root endpoint with service info."""
        return {
            "service": settings.service_name,
            "version": __version__,
            "docs": "/docs",
        }

    return app
