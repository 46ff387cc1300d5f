"""
StairCardio API
===============
FastAPI application entry point for the phone-side sync and reminder
backend. Mount routers here.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.routers import insights, reminders, sync, today
from app.services.primary_sync import get_primary_sync_manager

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # no paired watch configured -> nothing to activate
    if settings.companion_url:
        activated = await get_primary_sync_manager().start()
        logger.info("Companion channel at %s activated=%s", settings.companion_url, activated)
    yield


app = FastAPI(
    title="StairCardio API",
    description="Stair-circuit tracking — reminders and watch sync backend",
    version="0.1.0",
    docs_url="/api/docs" if settings.environment != "production" else None,
    redoc_url="/api/redoc" if settings.environment != "production" else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(today.router)
app.include_router(sync.router)
app.include_router(reminders.router)
app.include_router(insights.router)


@app.get("/api/v1/health")
async def health_check() -> dict:
    return {"status": "ok", "service": "staircardio-api"}
