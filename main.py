"""
Event Photo Sharing - FastAPI Backend
Main application entry point
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import uvicorn

from app.core.config import settings
from app.core.db import engine, Base, SessionLocal
from app.api import routes_admin, routes_guest, routes_public, ws
from app.services.lifecycle_service import LifecycleService
from app.services.repositories import use_firestore
from app.services.storage import MEDIA_URL_PREFIX, get_photo_store

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def _sweep_expired_test_events():
    db = None if use_firestore() else SessionLocal()
    try:
        return LifecycleService(get_photo_store()).cleanup_expired_test_events(db=db)
    finally:
        if db is not None:
            db.close()

async def _test_event_sweeper(interval_minutes: int):
    """Periodically delete expired test events"""
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            await run_in_threadpool(_sweep_expired_test_events)
        except Exception as e:
            logger.error(f"Test event cleanup failed: {e}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    if not use_firestore():
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")

    sweeper = None
    if settings.TEST_CLEANUP_INTERVAL_MINUTES > 0:
        sweeper = asyncio.create_task(_test_event_sweeper(settings.TEST_CLEANUP_INTERVAL_MINUTES))
    yield
    if sweeper:
        sweeper.cancel()
    logger.info("Application shutdown")

# Create FastAPI application
app = FastAPI(
    title="Event Photo Sharing",
    description="Guest photo uploads with per-event guest and upload quotas",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Locally stored photos are served directly; Firebase serves its own public URLs
if not settings.USE_FIREBASE:
    os.makedirs(settings.LOCAL_STORAGE_DIR, exist_ok=True)
    app.mount(MEDIA_URL_PREFIX, StaticFiles(directory=settings.LOCAL_STORAGE_DIR), name="media")

# Include routers
app.include_router(routes_public.router, tags=["public"])
app.include_router(routes_guest.router, prefix="/guest", tags=["guest"])
app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
