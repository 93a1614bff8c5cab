"""
Admin API routes - requires authentication
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.api.deps import gallery_service, lifecycle_service
from app.api.ws import websocket_manager
from app.core.db import get_db
from app.core.errors import AdmissionError, LifecycleError
from app.schemas.event import EventCreate, EventUpdate
from app.services.gallery_service import GalleryService
from app.services.lifecycle_service import LifecycleService
from app.utils.security import verify_admin_token
from app.utils.responses import success_response, domain_error_response

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/events")
async def create_event(
    event_data: EventCreate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Create a new event; admins get an unlimited guest cap unless one is given"""
    try:
        event = await run_in_threadpool(lifecycle.create_event, event_data, db, 0)
    except LifecycleError as exc:
        return domain_error_response(exc)

    return success_response(
        message="Event created successfully",
        data=event,
        status_code=201
    )

@router.get("/events/{event_id}")
async def get_event_details(
    event_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Get event configuration and guest count"""
    try:
        event = await run_in_threadpool(lifecycle.get_event, event_id, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(message="Event details retrieved", data=event)

@router.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    event_update: EventUpdate,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Edit capacity, dates, payment and publication flags"""
    try:
        event = await run_in_threadpool(lifecycle.update_event, event_id, event_update, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(message="Event updated successfully", data=event)

@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Delete an event with all photos, guests and stored files"""
    removed = await run_in_threadpool(lifecycle.delete_event, event_id, db)
    if removed:
        logger.info(f"Event {event_id} deleted by admin")

    return success_response(
        message="Event deleted successfully" if removed else "Event already deleted",
        data={"deleted_event_id": event_id, "removed": removed}
    )

@router.get("/events/{event_id}/photos")
async def list_event_photos(
    event_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    gallery: GalleryService = Depends(gallery_service)
):
    """All photos of an event regardless of publication state"""
    try:
        photos = await run_in_threadpool(gallery.list_photos, event_id, None, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(message="Photos retrieved", data={"photos": photos, "count": len(photos)})

@router.delete("/events/{event_id}/photos/{photo_id}")
async def delete_photo(
    event_id: str,
    photo_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    gallery: GalleryService = Depends(gallery_service)
):
    """Remove a photo from the gallery and storage"""
    removed = await run_in_threadpool(gallery.delete_photo, event_id, photo_id, db)
    if removed:
        await websocket_manager.broadcast_to_event(event_id, {"type": "photo_deleted", "photo_id": photo_id})

    return success_response(
        message="Photo deleted successfully",
        data={"deleted_photo_id": photo_id, "removed": removed}
    )

@router.post("/events/{event_id}/resync")
async def resync_photos(
    event_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Link stored photo files that have no record"""
    try:
        report = await run_in_threadpool(lifecycle.resync_photos, event_id, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(
        message=f"Resync complete. Processed: {report.processed} files. Newly linked: {report.linked}. Failed: {report.failed}.",
        data=report
    )

@router.post("/events/{event_id}/reconcile")
async def reconcile_counters(
    event_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Recompute guest and upload counters from stored records"""
    try:
        result = await run_in_threadpool(lifecycle.reconcile_counters, event_id, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(message="Counters reconciled", data=result)

@router.post("/test-events/cleanup")
async def cleanup_test_events(
    db: Session = Depends(get_db),
    token: str = Depends(verify_admin_token),
    lifecycle: LifecycleService = Depends(lifecycle_service)
):
    """Delete test events whose end date has passed"""
    deleted = await run_in_threadpool(lifecycle.cleanup_expired_test_events, None, db)

    return success_response(
        message=f"Removed {len(deleted)} expired test events",
        data={"deleted_event_ids": deleted}
    )
