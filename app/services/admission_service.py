"""
Guest photo admission: validates an upload, claims quota atomically, stores
the blob and records the photo.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AdmissionError, EventNotFound, MissingGuestIdentity, StorageError
from app.models import Photo
from app.schemas.guest import GuestUploadInfo
from app.schemas.photo import PhotoRecord
from app.services.photo_payload import decode_photo
from app.services.repositories import EventRepo, GuestRepo, PhotoRepo, use_firestore
from app.services.storage import PhotoStore, photo_path

logger = logging.getLogger(__name__)


def _photo_record_from_model(photo: Photo) -> PhotoRecord:
    return PhotoRecord(
        id=photo.id,
        event_id=photo.event_id,
        guest_id=photo.guest_id,
        url=photo.url,
        storage_path=photo.storage_path,
        message=photo.message,
        author=photo.author,
        created_at=photo.created_at,
    )


class AdmissionService:
    """Service deciding and executing guest photo uploads"""

    def __init__(self, photo_store: PhotoStore, metadata_retries: Optional[int] = None):
        self.photo_store = photo_store
        self.metadata_retries = max(metadata_retries or settings.METADATA_WRITE_RETRIES, 1)

    def submit_photo(
        self,
        event_id: str,
        guest_id: str,
        photo_data_url: str,
        caption: Optional[str] = None,
        author_name: Optional[str] = None,
        db: Optional[Session] = None,
    ) -> PhotoRecord:
        """Admit and store one guest photo.

        Raises MissingGuestIdentity, EventNotFound or InvalidPayload for bad
        requests, EventFull or UploadLimitReached when a quota rejects, and
        StorageError when the registry, blob store or metadata store fails.
        No guest, photo or blob is left behind on any of these outcomes.
        """
        if not guest_id or not guest_id.strip():
            raise MissingGuestIdentity()
        guest_id = guest_id.strip()
        # stored as given; listings fall back to a label derived from the guest id
        author = author_name or None
        message = caption or None

        try:
            if not use_firestore():
                event = EventRepo.get_sql(db, event_id)
                if not event:
                    raise EventNotFound(event_id)
                storage_path_id = event.storage_path_id or event.id
                photo = decode_photo(photo_data_url)
                new_guest = GuestRepo.reserve_sql(db, event, guest_id, author)
                photo_id = uuid.uuid4().hex
            else:
                event_doc = EventRepo.get_fs(event_id)
                if not event_doc:
                    raise EventNotFound(event_id)
                storage_path_id = event_doc["storage_path_id"]
                photo = decode_photo(photo_data_url)
                new_guest = GuestRepo.reserve_fs(event_id, guest_id, author)
                photo_id = PhotoRepo.new_id_fs(event_id)
        except AdmissionError:
            raise
        except Exception as exc:
            raise self._registry_error(exc, event_id, db) from exc

        path = photo_path(storage_path_id, photo_id, photo.extension)

        try:
            self.photo_store.put(path, photo.data, photo.content_type)
            url = self.photo_store.make_public(path)
        except Exception as exc:
            logger.error(f"Storing photo {path} for event {event_id} failed: {exc}")
            self._discard_blob(path)
            self._release(event_id, guest_id, new_guest, db)
            raise StorageError.from_exception(exc) from exc

        record = self._record_photo(
            event_id=event_id,
            photo_id=photo_id,
            guest_id=guest_id,
            path=path,
            url=url,
            message=message,
            author=author,
            new_guest=new_guest,
            db=db,
        )
        logger.info(f"Photo {photo_id} admitted for guest {guest_id} in event {event_id} (new guest: {new_guest})")
        return record

    def join_event(self, event_id: str, guest_id: str, name: Optional[str] = None, db: Optional[Session] = None) -> bool:
        """Register a guest without uploading; returns whether a slot was newly taken"""
        if not guest_id or not guest_id.strip():
            raise MissingGuestIdentity()
        guest_id = guest_id.strip()

        try:
            if not use_firestore():
                event = EventRepo.get_sql(db, event_id)
                if not event:
                    raise EventNotFound(event_id)
                return GuestRepo.reserve_sql(db, event, guest_id, name, count_upload=False)

            if not EventRepo.get_fs(event_id):
                raise EventNotFound(event_id)
            return GuestRepo.reserve_fs(event_id, guest_id, name, count_upload=False)
        except AdmissionError:
            raise
        except Exception as exc:
            raise self._registry_error(exc, event_id, db) from exc

    def get_guest_upload_info(self, event_id: str, guest_id: str, db: Optional[Session] = None) -> GuestUploadInfo:
        """Upload limit and the guest's current count, as used for admission"""
        try:
            if not use_firestore():
                event = EventRepo.get_sql(db, event_id)
                if not event:
                    raise EventNotFound(event_id)
                limit = event.photo_upload_limit or 0
                count = GuestRepo.count_uploads_sql(db, event_id, guest_id) if guest_id else 0
            else:
                event_doc = EventRepo.get_fs(event_id)
                if not event_doc:
                    raise EventNotFound(event_id)
                limit = event_doc["photo_upload_limit"]
                count = GuestRepo.count_uploads_fs(event_id, guest_id) if guest_id else 0
        except AdmissionError:
            raise
        except Exception as exc:
            raise self._registry_error(exc, event_id, db) from exc

        return GuestUploadInfo(upload_limit=limit, upload_count=count)

    def _record_photo(
        self,
        event_id: str,
        photo_id: str,
        guest_id: str,
        path: str,
        url: str,
        message: Optional[str],
        author: str,
        new_guest: bool,
        db: Optional[Session],
    ) -> PhotoRecord:
        """Write photo metadata, retrying; on persistent failure remove the blob"""
        last_error: Optional[Exception] = None
        for attempt in range(1, self.metadata_retries + 1):
            try:
                if not use_firestore():
                    existing = PhotoRepo.get_sql(db, event_id, photo_id)
                    if existing:
                        return _photo_record_from_model(existing)
                    photo = PhotoRepo.create_sql(db, Photo(
                        id=photo_id,
                        event_id=event_id,
                        guest_id=guest_id,
                        storage_path=path,
                        url=url,
                        message=message,
                        author=author,
                        created_at=datetime.utcnow(),
                    ))
                    return _photo_record_from_model(photo)

                data = PhotoRepo.create_fs(event_id, photo_id, {
                    "storage_path": path,
                    "url": url,
                    "guest_id": guest_id,
                    "author": author,
                    "message": message,
                })
                return PhotoRecord(**data)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    f"Metadata write for photo {photo_id} in event {event_id} failed "
                    f"(attempt {attempt}/{self.metadata_retries}): {exc}"
                )

        logger.error(f"Giving up on metadata for photo {photo_id} in event {event_id}; removing blob {path}")
        self._discard_blob(path)
        self._release(event_id, guest_id, new_guest, db)
        raise StorageError.from_exception(last_error) from last_error

    def _registry_error(self, exc: Exception, event_id: str, db: Optional[Session]) -> StorageError:
        """Classify a registry failure; the session is left usable for the caller"""
        logger.error(f"Registry failure for event {event_id}: {exc}")
        if db is not None:
            try:
                db.rollback()
            except Exception as rollback_exc:
                logger.error(f"Rollback after registry failure for event {event_id} failed: {rollback_exc}")
        return StorageError.from_exception(exc)

    def _discard_blob(self, path: str) -> None:
        try:
            if self.photo_store.exists(path):
                self.photo_store.delete(path)
        except Exception as exc:
            logger.error(f"Could not remove orphaned blob {path}: {exc}")

    def _release(self, event_id: str, guest_id: str, new_guest: bool, db: Optional[Session]) -> None:
        try:
            if not use_firestore():
                GuestRepo.release_sql(db, event_id, guest_id, drop_guest=new_guest)
            else:
                GuestRepo.release_fs(event_id, guest_id, drop_guest=new_guest)
        except Exception as exc:
            logger.error(f"Could not release quota for guest {guest_id} in event {event_id}: {exc}")
