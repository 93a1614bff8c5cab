"""
Event lifecycle: creation, cascading deletion, trial accounts and repair tools
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    EventAlreadyExists,
    EventNotFound,
    InvalidPartner,
    OwnerCreationRequiresPassword,
)
from app.models import Event, Photo
from app.schemas.event import EventCreate, EventResponse, EventUpdate
from app.schemas.photo import ResyncReport
from app.services.identity import IdentityProvider
from app.services.repositories import (
    RESYNCED_GUEST_ID,
    EventRepo,
    PartnerRepo,
    PhotoRepo,
    use_firestore,
)
from app.services.storage import PhotoStore, event_prefix, photos_prefix

logger = logging.getLogger(__name__)


def _event_response_from_model(event: Event) -> EventResponse:
    return EventResponse(
        id=event.id,
        name=event.name,
        description=event.description or "",
        owner=event.owner,
        partner_id=event.partner_id,
        storage_path_id=event.storage_path_id,
        start_date=event.start_date,
        end_date=event.end_date,
        is_test=bool(event.is_test),
        paid=bool(event.paid),
        photos_published=bool(event.photos_published),
        max_guests=event.max_guests or 0,
        photo_upload_limit=event.photo_upload_limit or 0,
        guest_count=event.guest_count or 0,
        created_at=event.created_at,
    )


class LifecycleService:
    """Service for creating and tearing down events"""

    def __init__(self, photo_store: PhotoStore):
        self.photo_store = photo_store

    # -------- Creation --------

    def create_event(
        self,
        data: EventCreate,
        db: Optional[Session] = None,
        default_max_guests: Optional[int] = None,
    ) -> EventResponse:
        """Create an event, creating its owner account when needed.

        ``default_max_guests`` is the caller's default guest cap (admins create
        unlimited events, clients get ``DEFAULT_MAX_GUESTS``).
        """
        owner = str(data.owner).lower()

        if data.partner_id:
            known = PartnerRepo.exists_fs(data.partner_id) if use_firestore() \
                else PartnerRepo.exists_sql(db, data.partner_id)
            if not known:
                raise InvalidPartner(data.partner_id)

        if data.id and self._event_exists(data.id, db):
            raise EventAlreadyExists(data.id)

        created_owner = self._ensure_owner(owner, data.client_password, db)
        event_id = data.id or self._new_event_id(db)

        if default_max_guests is None:
            default_max_guests = settings.DEFAULT_MAX_GUESTS
        fields: Dict[str, Any] = {
            "name": data.name,
            "description": data.description,
            "owner": owner,
            "partner_id": data.partner_id,
            "storage_path_id": data.storage_path_id or event_id,
            "start_date": data.start_date,
            "end_date": data.end_date,
            "is_test": data.is_test,
            "paid": data.paid,
            "photos_published": data.photos_published,
            "max_guests": default_max_guests if data.max_guests is None else data.max_guests,
            "photo_upload_limit": settings.DEFAULT_PHOTO_UPLOAD_LIMIT
            if data.photo_upload_limit is None else data.photo_upload_limit,
        }

        try:
            if not use_firestore():
                event = EventRepo.create_sql(db, id=event_id, created_at=datetime.utcnow(), **fields)
                result = _event_response_from_model(event)
            else:
                result = EventResponse(**EventRepo.create_fs(event_id, fields))
        except Exception:
            if created_owner:
                logger.error(f"Event creation for {owner} failed; removing the new account")
                self._remove_account(owner, created_owner, db)
            raise

        logger.info(f"Created event {event_id} for {owner}")
        return result

    def create_test_account(self, email: str, password: str, db: Optional[Session] = None) -> Dict[str, str]:
        """Create a trial account with one paid, unlimited-upload test event.

        The event ends after TEST_EVENT_TTL_HOURS and is then removed by
        ``cleanup_expired_test_events``. The account is rolled back if the
        event cannot be created.
        """
        email = email.lower()
        if use_firestore():
            uid = IdentityProvider.create_account_fs(email, password, name="Test User")
        else:
            uid = IdentityProvider.create_account_sql(db, email, password, name="Test User")

        event_id = f"test-{secrets.token_hex(8)}"
        now = datetime.utcnow()
        try:
            self.create_event(EventCreate(
                id=event_id,
                name="My Test Event",
                description="Temporary event to try out the features. It is deleted automatically.",
                owner=email,
                start_date=now,
                end_date=now + timedelta(hours=settings.TEST_EVENT_TTL_HOURS),
                is_test=True,
                paid=True,
                photo_upload_limit=0,
            ), db=db)
        except Exception:
            logger.error(f"Test event creation for {email} failed; removing account")
            self._remove_account(email, uid, db)
            raise

        return {"user_id": uid, "event_id": event_id}

    # -------- Reads and admin edits --------

    def get_event(self, event_id: str, db: Optional[Session] = None) -> EventResponse:
        if not use_firestore():
            event = EventRepo.get_sql(db, event_id)
            if not event:
                raise EventNotFound(event_id)
            return _event_response_from_model(event)

        event_doc = EventRepo.get_fs(event_id)
        if not event_doc:
            raise EventNotFound(event_id)
        return EventResponse(**event_doc)

    def update_event(self, event_id: str, update: EventUpdate, db: Optional[Session] = None) -> EventResponse:
        """Apply admin edits field by field (last write wins)"""
        changes = {k: v for k, v in update.dict(exclude_unset=True).items() if v is not None}

        if not use_firestore():
            event = EventRepo.get_sql(db, event_id)
            if not event:
                raise EventNotFound(event_id)
            return _event_response_from_model(EventRepo.update_sql(db, event, changes))

        if not EventRepo.get_fs(event_id):
            raise EventNotFound(event_id)
        return EventResponse(**EventRepo.update_fs(event_id, changes))

    # -------- Deletion --------

    def delete_event(self, event_id: str, db: Optional[Session] = None) -> bool:
        """Delete an event with its photos, guests and blobs.

        Idempotent: an unknown event is reported as success. Returns whether
        an event record was removed by this call. Blob removal is best effort.
        """
        if not use_firestore():
            event = EventRepo.get_sql(db, event_id)
            if not event:
                logger.info(f"Event with ID {event_id} not found for deletion.")
                return False
            storage_path_id = event.storage_path_id or event.id
            is_test, owner = bool(event.is_test), event.owner
        else:
            event_doc = EventRepo.get_fs(event_id)
            if not event_doc:
                logger.info(f"Event with ID {event_id} not found for deletion.")
                return False
            storage_path_id = event_doc["storage_path_id"]
            is_test, owner = event_doc["is_test"], event_doc["owner"]

        try:
            removed = self.photo_store.delete_by_prefix(event_prefix(storage_path_id))
            logger.info(f"Deleted {removed} files in storage for event {event_id}")
        except Exception as exc:
            logger.error(f"Failed to delete files from storage for event {event_id}: {exc}")

        if not use_firestore():
            counts = EventRepo.delete_records_sql(db, event_id)
        else:
            counts = EventRepo.delete_records_fs(event_id)
        logger.info(f"Deleted event {event_id}: {counts['photos']} photos, {counts['guests']} guests")

        if is_test and owner:
            self._delete_test_owner(owner, db)

        return True

    def cleanup_expired_test_events(self, now: Optional[datetime] = None, db: Optional[Session] = None) -> List[str]:
        """Delete test events whose end date has passed; returns their ids"""
        now = now or datetime.utcnow()
        if not use_firestore():
            expired_ids = [e.id for e in EventRepo.list_expired_test_sql(db, now)]
        else:
            expired_ids = [e["id"] for e in EventRepo.list_expired_test_fs(now)]

        for event_id in expired_ids:
            self.delete_event(event_id, db=db)
        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired test events")
        return expired_ids

    # -------- Repair tools --------

    def resync_photos(self, event_id: str, db: Optional[Session] = None) -> ResyncReport:
        """Create records for blobs in the event's photo folder that have none"""
        if not use_firestore():
            event = EventRepo.get_sql(db, event_id)
            if not event:
                raise EventNotFound(event_id)
            storage_path_id = event.storage_path_id or event.id
        else:
            event_doc = EventRepo.get_fs(event_id)
            if not event_doc:
                raise EventNotFound(event_id)
            storage_path_id = event_doc["storage_path_id"]

        paths = self.photo_store.list_paths(photos_prefix(storage_path_id))
        report = ResyncReport(processed=len(paths))

        for path in paths:
            file_name = path.rsplit("/", 1)[-1]
            photo_id = file_name.split(".")[0]
            if not photo_id:
                continue
            exists = PhotoRepo.exists_fs(event_id, photo_id) if use_firestore() \
                else PhotoRepo.exists_sql(db, event_id, photo_id)
            if exists:
                continue

            try:
                url = self.photo_store.make_public(path)
                if not use_firestore():
                    PhotoRepo.create_sql(db, Photo(
                        id=photo_id,
                        event_id=event_id,
                        guest_id=RESYNCED_GUEST_ID,
                        storage_path=path,
                        url=url,
                        message="Resynced from storage",
                        created_at=datetime.utcnow(),
                    ))
                else:
                    PhotoRepo.create_fs(event_id, photo_id, {
                        "storage_path": path,
                        "url": url,
                        "guest_id": RESYNCED_GUEST_ID,
                        "message": "Resynced from storage",
                    })
                report.linked += 1
            except Exception as exc:
                logger.error(f"Failed to link photo {path}: {exc}")
                report.failed += 1

        logger.info(
            f"Resync complete for event {event_id}. Processed: {report.processed} files. "
            f"Newly linked: {report.linked}. Failed: {report.failed}."
        )
        return report

    def reconcile_counters(self, event_id: str, db: Optional[Session] = None) -> Dict[str, Any]:
        """Recompute guest and upload counters from the stored records"""
        if not use_firestore():
            if not EventRepo.get_sql(db, event_id):
                raise EventNotFound(event_id)
            result = PhotoRepo.reconcile_counters_sql(db, event_id)
        else:
            if not EventRepo.get_fs(event_id):
                raise EventNotFound(event_id)
            result = PhotoRepo.reconcile_counters_fs(event_id)
        logger.info(f"Reconciled counters for event {event_id}: {result}")
        return result

    # -------- Helpers --------

    def _ensure_owner(self, owner: str, password: Optional[str], db: Optional[Session]) -> Optional[str]:
        """Look up the owner, creating the account if needed; returns the uid only when created"""
        if not use_firestore():
            if IdentityProvider.lookup_by_email_sql(db, owner):
                return None
            if not password:
                raise OwnerCreationRequiresPassword(owner)
            return IdentityProvider.create_account_sql(db, owner, password)

        if IdentityProvider.lookup_by_email_fs(owner):
            IdentityProvider.ensure_profile_fs(owner)
            return None
        if not password:
            raise OwnerCreationRequiresPassword(owner)
        return IdentityProvider.create_account_fs(owner, password)

    def _remove_account(self, email: str, uid: str, db: Optional[Session]) -> None:
        if use_firestore():
            IdentityProvider.delete_account_fs(email)
        else:
            if db is not None:
                db.rollback()
            IdentityProvider.delete_account_sql(db, uid)

    def _delete_test_owner(self, owner: str, db: Optional[Session]) -> None:
        """Remove a trial owner once none of their events is a real one"""
        has_real = EventRepo.owner_has_real_events_fs(owner) if use_firestore() \
            else EventRepo.owner_has_real_events_sql(db, owner)
        if has_real:
            logger.info(f"User {owner} has other real events, not deleting user account.")
            return

        try:
            if use_firestore():
                deleted = IdentityProvider.delete_account_fs(owner)
            else:
                uid = IdentityProvider.lookup_by_email_sql(db, owner)
                deleted = IdentityProvider.delete_account_sql(db, uid) if uid else False
        except Exception as exc:
            logger.error(f"Error deleting user {owner}: {exc}")
            return

        if deleted:
            logger.info(f"Successfully deleted account {owner}.")
        else:
            logger.info(f"Account {owner} not found, skipping deletion.")

    def _event_exists(self, event_id: str, db: Optional[Session]) -> bool:
        if use_firestore():
            return EventRepo.get_fs(event_id) is not None
        return EventRepo.get_sql(db, event_id) is not None

    def _new_event_id(self, db: Optional[Session]) -> str:
        event_id = secrets.token_urlsafe(8)
        while self._event_exists(event_id, db):
            event_id = secrets.token_urlsafe(8)
        return event_id
