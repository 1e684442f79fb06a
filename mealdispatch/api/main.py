"""FastAPI application.

This module is the authoritative app object -- ``mealdispatch.main``
re-exports it.
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from mealdispatch.api.routes.campaigns import router as campaigns_router
from mealdispatch.api.routes.cron import router as cron_router
from mealdispatch.api.routes.health import router as health_router
from mealdispatch.api.routes.unsubscribe import router as unsubscribe_router
from mealdispatch.core.logging import setup_logging
from mealdispatch.core.settings import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    yield


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(cron_router)
app.include_router(campaigns_router)
app.include_router(unsubscribe_router)
