"""
gateway/main.py

FastAPI application entry point for the Gateway service.
Initializes the Firebase platform handle and registers routers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI

from config import settings
from gateway.routers.proxy import router as proxy_router
from store.firebase import FirebasePlatform

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle: startup and shutdown."""
    app.state.platform = FirebasePlatform.initialize()
    logger.info("gateway_starting", port=settings.gateway_port)
    yield
    logger.info("gateway_shutting_down")


app = FastAPI(
    title="Guardian Alerts Gateway",
    description="Device write proxy into the Firebase Realtime Database",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(proxy_router)
