"""
Public API routes - no authentication required
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.api.deps import gallery_service, lifecycle_service
from app.core.db import get_db
from app.core.errors import AdmissionError, LifecycleError
from app.schemas.event import TrialAccountCreate
from app.services.gallery_service import GalleryService
from app.services.lifecycle_service import LifecycleService
from app.services.qr_service import QRService
from app.utils.security import rate_limit_check
from app.utils.responses import success_response, error_response, domain_error_response, rate_limit_error

router = APIRouter()

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/events/{event_id}/qr.png")
async def get_qr_code(
    event_id: str,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """QR code image pointing at the event camera"""
    try:
        await run_in_threadpool(lifecycle.get_event, event_id, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    qr_bytes = QRService.generate_event_qr(event_id)

    return Response(
        content=qr_bytes,
        media_type="image/png",
        headers={"Content-Disposition": f"inline; filename=qr_{event_id}.png"}
    )

@router.get("/events/{event_id}/slideshow")
async def slideshow_photos(
    event_id: str,
    request: Request,
    since: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(lifecycle_service),
    gallery: GalleryService = Depends(gallery_service)
):
    """Photos for the live slideshow; poll with ``since`` for new ones"""
    if not rate_limit_check(request, scope="slideshow", limit=120):
        return rate_limit_error()

    try:
        event = await run_in_threadpool(lifecycle.get_event, event_id, db)
        if not event.paid:
            return error_response(message="The slideshow is not available for this event.", status_code=403)
        photos = await run_in_threadpool(gallery.list_photos, event_id, since, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(
        message="Photos retrieved",
        data={"photos": photos, "count": len(photos)}
    )

@router.get("/events/{event_id}/gallery")
async def gallery_photos(
    event_id: str,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(lifecycle_service),
    gallery: GalleryService = Depends(gallery_service)
):
    """Published photo gallery"""
    try:
        event = await run_in_threadpool(lifecycle.get_event, event_id, db)
        if not event.photos_published:
            return error_response(message="Photos for this event have not been published yet.", status_code=403)
        photos = await run_in_threadpool(gallery.list_photos, event_id, None, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(
        message="Photos retrieved",
        data={"event_name": event.name, "photos": photos, "count": len(photos)}
    )

@router.post("/test-accounts")
async def create_test_account(
    request: Request,
    account: TrialAccountCreate,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Self-service trial: an account with one temporary event"""
    if not rate_limit_check(request, scope="trial", limit=5):
        return rate_limit_error()

    try:
        result = await run_in_threadpool(lifecycle.create_test_account, account.email, account.password, db)
    except LifecycleError as exc:
        return domain_error_response(exc)

    return success_response(
        message="Test account created",
        data=result,
        status_code=201
    )
