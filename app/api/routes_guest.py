"""
Guest-facing API routes (camera, upload, quota)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import admission_service
from app.api.ws import websocket_manager
from app.core.db import get_db
from app.core.errors import AdmissionError
from app.schemas.guest import PhotoUploadRequest
from app.services.admission_service import AdmissionService
from app.services.repositories import author_label
from app.utils.security import rate_limit_check
from app.utils.responses import success_response, domain_error_response, rate_limit_error

logger = logging.getLogger(__name__)

router = APIRouter()

class JoinRequest(BaseModel):
    guest_id: str
    name: Optional[str] = None

@router.post("/events/{event_id}/photos")
async def upload_photo(
    event_id: str,
    request: Request,
    upload: PhotoUploadRequest,
    db: Session = Depends(get_db),
    service: AdmissionService = Depends(admission_service)
):
    """Submit one photo from the guest camera"""
    if not rate_limit_check(request, scope="upload"):
        return rate_limit_error()

    try:
        record = await run_in_threadpool(
            service.submit_photo,
            event_id,
            upload.guest_id,
            upload.photo,
            upload.message,
            upload.author,
            db,
        )
    except AdmissionError as exc:
        logger.info(f"Upload to event {event_id} rejected: {exc.code}")
        return domain_error_response(exc)

    await websocket_manager.broadcast_to_event(event_id, {
        "type": "photo_added",
        "photo": {
            "id": record.id,
            "url": record.url,
            "message": record.message or "",
            "author": author_label(record.author, record.guest_id),
            "timestamp": record.created_at.isoformat(),
        }
    })

    return success_response(
        message="Photo uploaded",
        data=record,
        status_code=201
    )

@router.post("/events/{event_id}/join")
async def join_event(
    event_id: str,
    request: Request,
    join: JoinRequest,
    db: Session = Depends(get_db),
    service: AdmissionService = Depends(admission_service)
):
    """Claim a guest place before the first upload"""
    if not rate_limit_check(request, scope="join"):
        return rate_limit_error()

    try:
        joined = await run_in_threadpool(service.join_event, event_id, join.guest_id, join.name, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(
        message="Welcome!" if joined else "Welcome back!",
        data={"new_guest": joined}
    )

@router.get("/events/{event_id}/upload-info")
async def get_upload_info(
    event_id: str,
    guest_id: str = Query(""),
    db: Session = Depends(get_db),
    service: AdmissionService = Depends(admission_service)
):
    """Upload limit and the guest's current count; limit 0 means unlimited"""
    try:
        info = await run_in_threadpool(service.get_guest_upload_info, event_id, guest_id, db)
    except AdmissionError as exc:
        return domain_error_response(exc)

    return success_response(
        message="Upload info retrieved",
        data=info
    )
