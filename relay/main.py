"""
relay/main.py

FastAPI application entry point for the relay service.
Configures structlog, manages the shared httpx client lifecycle and registers routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI

from config import settings
from relay.routers.triggers import router as triggers_router

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle: startup and shutdown."""
    logger.info("relay_starting", default_region=settings.linkup_default_region)
    async with httpx.AsyncClient(timeout=settings.http_timeout_s) as client:
        app.state.http_client = client
        yield
    logger.info("relay_shutting_down")


app = FastAPI(
    title="LinkUp Relay",
    description="Polls LibreLinkUp on behalf of one account and emits glucose trigger events",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(triggers_router)
