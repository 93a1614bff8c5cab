"""
Gallery and slideshow photo access
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import EventNotFound
from app.schemas.photo import PhotoSummary
from app.services.repositories import EventRepo, PhotoRepo, author_label, use_firestore
from app.services.storage import PhotoStore

logger = logging.getLogger(__name__)


class GalleryService:
    """Service for listing and moderating event photos"""

    def __init__(self, photo_store: PhotoStore):
        self.photo_store = photo_store

    def list_photos(
        self,
        event_id: str,
        since: Optional[datetime] = None,
        db: Optional[Session] = None,
    ) -> List[PhotoSummary]:
        """Photos newest first; with ``since`` only those created after it.

        Slideshows poll with the timestamp of the newest photo they have seen.
        """
        if not use_firestore():
            if not EventRepo.get_sql(db, event_id):
                raise EventNotFound(event_id)
            rows = [
                {
                    "id": p.id,
                    "url": p.url,
                    "message": p.message,
                    "author": p.author,
                    "guest_id": p.guest_id,
                    "created_at": p.created_at,
                }
                for p in PhotoRepo.list_sql(db, event_id, since)
            ]
        else:
            if not EventRepo.get_fs(event_id):
                raise EventNotFound(event_id)
            rows = PhotoRepo.list_fs(event_id, since)

        return [
            PhotoSummary(
                id=row["id"],
                url=row["url"],
                message=row.get("message") or "",
                author=author_label(row.get("author"), row.get("guest_id")),
                timestamp=row["created_at"],
            )
            for row in rows
        ]

    def delete_photo(self, event_id: str, photo_id: str, db: Optional[Session] = None) -> bool:
        """Remove a photo record and its blob.

        A photo that is already gone counts as deleted. The record is removed
        first; a blob that cannot be removed afterwards is only logged.
        Returns whether a record was removed by this call.
        """
        if not use_firestore():
            storage_path = PhotoRepo.delete_record_sql(db, event_id, photo_id)
            existed = storage_path is not None
        else:
            storage_path = PhotoRepo.delete_record_fs(event_id, photo_id)
            existed = storage_path is not None

        if not existed:
            logger.warning(f"Photo {photo_id} not found in event {event_id}.")
            return False

        if storage_path:
            try:
                if self.photo_store.exists(storage_path):
                    self.photo_store.delete(storage_path)
                else:
                    logger.warning(f"File {storage_path} not found in storage, but its record was deleted.")
            except Exception as exc:
                logger.error(f"Photo {photo_id} record deleted but blob {storage_path} remains: {exc}")

        return True
