"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).

Counters (event guest count, per-guest upload count) are only ever changed
through ``GuestRepo.reserve_*`` / ``GuestRepo.release_*`` and
``PhotoRepo.delete_*`` so that each check-and-increment is a single atomic
write on either backend.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from sqlalchemy import func, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import EventFull, EventNotFound, UploadLimitReached
from app.models import Event, Guest, Partner, Photo
from app.services.firebase_client import get_firestore_client
from app.services.quota import EventConfig, can_admit_guest, can_admit_upload, check_counts

logger = logging.getLogger(__name__)

RESYNCED_GUEST_ID = "resynced"

# snake_case model field -> Firestore document field
EVENT_FIELDS = {
    "name": "name",
    "description": "description",
    "owner": "owner",
    "partner_id": "partnerId",
    "storage_path_id": "storagePathId",
    "start_date": "startDate",
    "end_date": "endDate",
    "is_test": "isTest",
    "paid": "paid",
    "photos_published": "photosPublished",
    "max_guests": "maxGuests",
    "photo_upload_limit": "photoUploadLimit",
    "guest_count": "activeGuests",
    "created_at": "createdAt",
}

FIRESTORE_BATCH_SIZE = 400


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


def event_doc_to_dict(event_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Firestore event document -> snake_case dict with defaults applied"""
    result = {field: data.get(fs_field) for field, fs_field in EVENT_FIELDS.items()}
    result["id"] = event_id
    result["description"] = result["description"] or ""
    result["storage_path_id"] = result["storage_path_id"] or event_id
    result["is_test"] = bool(result["is_test"])
    result["paid"] = bool(result["paid"])
    result["photos_published"] = bool(result["photos_published"])
    result["max_guests"] = int(result["max_guests"] or 0)
    limit = data.get("photoUploadLimit")
    result["photo_upload_limit"] = settings.DEFAULT_PHOTO_UPLOAD_LIMIT if limit is None else int(limit)
    result["guest_count"] = int(result["guest_count"] or 0)
    return result


def author_label(author: Optional[str], guest_id: Optional[str]) -> str:
    if author:
        return author
    if guest_id:
        return f"Guest...{guest_id[-4:]}"
    return "Anonymous"


def _guest_slot_clause(config: EventConfig):
    if config.max_guests == 0:
        return true()
    return Event.guest_count < config.max_guests


def _upload_slot_clause(config: EventConfig):
    if config.photo_upload_limit == 0:
        return true()
    return Guest.upload_count < config.photo_upload_limit


def _delete_collection_fs(collection_ref) -> int:
    """Delete every document of a collection in batches"""
    fs = get_firestore_client()
    docs = list(collection_ref.stream())
    for start in range(0, len(docs), FIRESTORE_BATCH_SIZE):
        batch = fs.batch()
        for doc in docs[start:start + FIRESTORE_BATCH_SIZE]:
            batch.delete(doc.reference)
        batch.commit()
    return len(docs)


# -------- Event repository --------

class EventRepo:
    @staticmethod
    def get_sql(db: Session, event_id: str) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def create_sql(db: Session, **fields: Any) -> Event:
        event = Event(guest_count=0, **fields)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def update_sql(db: Session, event: Event, changes: Dict[str, Any]) -> Event:
        for field, value in changes.items():
            setattr(event, field, value)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def delete_records_sql(db: Session, event_id: str) -> Dict[str, int]:
        """Delete photos, guests and the event row in one transaction"""
        photos = db.query(Photo).filter(Photo.event_id == event_id).delete(synchronize_session=False)
        guests = db.query(Guest).filter(Guest.event_id == event_id).delete(synchronize_session=False)
        events = db.query(Event).filter(Event.id == event_id).delete(synchronize_session=False)
        db.commit()
        return {"photos": photos, "guests": guests, "events": events}

    @staticmethod
    def list_expired_test_sql(db: Session, now: datetime) -> List[Event]:
        return db.query(Event).filter(
            Event.is_test == True,
            Event.end_date.isnot(None),
            Event.end_date < now,
        ).all()

    @staticmethod
    def owner_has_real_events_sql(db: Session, owner: str) -> bool:
        return db.query(Event.id).filter(Event.owner == owner, Event.is_test == False).first() is not None

    # Firestore shape: collection "events/{event_id}" document with camelCase fields
    @staticmethod
    def get_fs(event_id: str) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        if not fs:
            return None
        doc = fs.collection("events").document(event_id).get()
        return event_doc_to_dict(doc.id, doc.to_dict()) if doc.exists else None

    @staticmethod
    def create_fs(event_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        fs = get_firestore_client()
        data = {EVENT_FIELDS[k]: v for k, v in fields.items() if k in EVENT_FIELDS}
        data["activeGuests"] = 0
        data["createdAt"] = firestore.SERVER_TIMESTAMP
        ref = fs.collection("events").document(event_id)
        ref.set(data)
        return event_doc_to_dict(event_id, ref.get().to_dict())

    @staticmethod
    def update_fs(event_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        ref = fs.collection("events").document(event_id)
        ref.update({EVENT_FIELDS[k]: v for k, v in changes.items() if k in EVENT_FIELDS})
        doc = ref.get()
        return event_doc_to_dict(doc.id, doc.to_dict()) if doc.exists else None

    @staticmethod
    def delete_records_fs(event_id: str) -> Dict[str, int]:
        fs = get_firestore_client()
        ref = fs.collection("events").document(event_id)
        photos = _delete_collection_fs(ref.collection("photos"))
        guests = _delete_collection_fs(ref.collection("participants"))
        ref.delete()
        return {"photos": photos, "guests": guests, "events": 1}

    @staticmethod
    def list_expired_test_fs(now: datetime) -> List[Dict[str, Any]]:
        fs = get_firestore_client()
        docs = fs.collection("events").where("isTest", "==", True).where("endDate", "<", now).get()
        return [event_doc_to_dict(d.id, d.to_dict()) for d in docs]

    @staticmethod
    def owner_has_real_events_fs(owner: str) -> bool:
        fs = get_firestore_client()
        docs = fs.collection("events").where("owner", "==", owner).where("isTest", "==", False).limit(1).get()
        return len(docs) > 0


class PartnerRepo:
    @staticmethod
    def exists_sql(db: Session, partner_id: str) -> bool:
        return db.query(Partner.id).filter(Partner.id == partner_id).first() is not None

    @staticmethod
    def exists_fs(partner_id: str) -> bool:
        fs = get_firestore_client()
        return fs.collection("partners").document(partner_id).get().exists


# -------- Guest repository --------

class GuestRepo:
    @staticmethod
    def count_guests_sql(db: Session, event_id: str) -> int:
        count = db.query(Event.guest_count).filter(Event.id == event_id).scalar()
        return int(count or 0)

    @staticmethod
    def get_sql(db: Session, event_id: str, guest_id: str) -> Optional[Guest]:
        return db.query(Guest).filter(Guest.event_id == event_id, Guest.guest_id == guest_id).first()

    @staticmethod
    def is_member_sql(db: Session, event_id: str, guest_id: str) -> bool:
        return GuestRepo.get_sql(db, event_id, guest_id) is not None

    @staticmethod
    def count_uploads_sql(db: Session, event_id: str, guest_id: str) -> int:
        count = db.query(Guest.upload_count).filter(
            Guest.event_id == event_id, Guest.guest_id == guest_id
        ).scalar()
        return int(count or 0)

    @staticmethod
    def create_if_absent_sql(db: Session, event_id: str, guest_id: str, name: Optional[str]) -> bool:
        """Register a guest without any capacity check; returns whether it was new"""
        if GuestRepo.is_member_sql(db, event_id, guest_id):
            return False
        try:
            db.add(Guest(event_id=event_id, guest_id=guest_id, name=name or "Anonymous", upload_count=0))
            db.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(guest_count=Event.guest_count + 1)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            return False
        return True

    @staticmethod
    def reserve_sql(
        db: Session,
        event: Event,
        guest_id: str,
        name: Optional[str],
        count_upload: bool = True,
    ) -> bool:
        """Atomically claim a guest slot (if new) and an upload slot.

        Each counter is advanced with a conditional UPDATE whose WHERE clause
        repeats the quota rule, so a request that loses a race for the last
        slot sees rowcount 0 and is rejected. Returns whether the guest record
        was created by this call. Nothing is written when a quota rejects.
        """
        config = EventConfig.from_model(event)
        event_id = event.id
        new_guest = False
        try:
            guest = GuestRepo.get_sql(db, event_id, guest_id)
            if guest is None:
                current = GuestRepo.count_guests_sql(db, event_id)
                check_counts(current)
                admitted = can_admit_guest(config, current, False)
                if admitted:
                    result = db.execute(
                        update(Event)
                        .where(Event.id == event_id, _guest_slot_clause(config))
                        .values(guest_count=Event.guest_count + 1)
                        .execution_options(synchronize_session=False)
                    )
                    admitted = result.rowcount == 1
                if not admitted:
                    db.rollback()
                    # the slot may have gone to this same guest id in a parallel request
                    if GuestRepo.is_member_sql(db, event_id, guest_id):
                        return GuestRepo.reserve_sql(db, event, guest_id, name, count_upload)
                    raise EventFull(config.max_guests)
                guest = Guest(event_id=event_id, guest_id=guest_id, name=name or "Anonymous", upload_count=0)
                db.add(guest)
                db.flush()
                new_guest = True

            if count_upload:
                check_counts(guest.upload_count or 0)
                if not can_admit_upload(config, guest.upload_count or 0):
                    raise UploadLimitReached(config.photo_upload_limit)
                result = db.execute(
                    update(Guest)
                    .where(Guest.id == guest.id, _upload_slot_clause(config))
                    .values(upload_count=Guest.upload_count + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise UploadLimitReached(config.photo_upload_limit)
            db.commit()
        except IntegrityError:
            # The same guest id joined concurrently; continue as a member
            db.rollback()
            return GuestRepo.reserve_sql(db, event, guest_id, name, count_upload)
        except Exception:
            db.rollback()
            raise
        return new_guest

    @staticmethod
    def release_sql(db: Session, event_id: str, guest_id: str, drop_guest: bool) -> None:
        """Undo a reservation after a failed blob or metadata write"""
        try:
            db.execute(
                update(Guest)
                .where(Guest.event_id == event_id, Guest.guest_id == guest_id, Guest.upload_count > 0)
                .values(upload_count=Guest.upload_count - 1)
                .execution_options(synchronize_session=False)
            )
            if drop_guest:
                # a concurrent upload may have made use of the new record meanwhile
                removed = db.query(Guest).filter(
                    Guest.event_id == event_id, Guest.guest_id == guest_id, Guest.upload_count == 0
                ).delete(synchronize_session=False)
                if removed:
                    db.execute(
                        update(Event)
                        .where(Event.id == event_id, Event.guest_count > 0)
                        .values(guest_count=Event.guest_count - 1)
                        .execution_options(synchronize_session=False)
                    )
            db.commit()
        except Exception:
            db.rollback()
            raise

    # Firestore guest docs under collection events/{event_id}/participants
    @staticmethod
    def count_guests_fs(event_id: str) -> int:
        event = EventRepo.get_fs(event_id)
        return event["guest_count"] if event else 0

    @staticmethod
    def is_member_fs(event_id: str, guest_id: str) -> bool:
        fs = get_firestore_client()
        return fs.collection("events").document(event_id).collection("participants").document(guest_id).get().exists

    @staticmethod
    def count_uploads_fs(event_id: str, guest_id: str) -> int:
        fs = get_firestore_client()
        doc = fs.collection("events").document(event_id).collection("participants").document(guest_id).get()
        if not doc.exists:
            return 0
        return int(doc.to_dict().get("uploadCount") or 0)

    @staticmethod
    def create_if_absent_fs(event_id: str, guest_id: str, name: Optional[str]) -> bool:
        fs = get_firestore_client()
        event_ref = fs.collection("events").document(event_id)
        guest_ref = event_ref.collection("participants").document(guest_id)

        @firestore.transactional
        def _create(transaction) -> bool:
            if guest_ref.get(transaction=transaction).exists:
                return False
            transaction.set(guest_ref, {
                "joinedAt": firestore.SERVER_TIMESTAMP,
                "name": name or "Anonymous",
                "uploadCount": 0,
            })
            transaction.update(event_ref, {"activeGuests": firestore.Increment(1)})
            return True

        return _create(fs.transaction())

    @staticmethod
    def reserve_fs(event_id: str, guest_id: str, name: Optional[str], count_upload: bool = True) -> bool:
        """Firestore counterpart of ``reserve_sql``.

        Counters are read inside the transaction, so Firestore retries or
        aborts the whole reservation if another request changed them first.
        """
        fs = get_firestore_client()
        event_ref = fs.collection("events").document(event_id)
        guest_ref = event_ref.collection("participants").document(guest_id)

        @firestore.transactional
        def _reserve(transaction) -> bool:
            event_snap = event_ref.get(transaction=transaction)
            if not event_snap.exists:
                raise EventNotFound(event_id)
            data = event_snap.to_dict()
            config = EventConfig.from_document(data)

            guest_snap = guest_ref.get(transaction=transaction)
            member = guest_snap.exists
            guest_count = int(data.get("activeGuests") or 0)
            upload_count = int(guest_snap.to_dict().get("uploadCount") or 0) if member else 0
            check_counts(guest_count, upload_count)

            if not can_admit_guest(config, guest_count, member):
                raise EventFull(config.max_guests)
            if count_upload and not can_admit_upload(config, upload_count):
                raise UploadLimitReached(config.photo_upload_limit)

            if not member:
                transaction.set(guest_ref, {
                    "joinedAt": firestore.SERVER_TIMESTAMP,
                    "name": name or "Anonymous",
                    "uploadCount": 1 if count_upload else 0,
                })
                transaction.update(event_ref, {"activeGuests": firestore.Increment(1)})
            elif count_upload:
                transaction.update(guest_ref, {"uploadCount": firestore.Increment(1)})
            return not member

        return _reserve(fs.transaction())

    @staticmethod
    def release_fs(event_id: str, guest_id: str, drop_guest: bool) -> None:
        fs = get_firestore_client()
        event_ref = fs.collection("events").document(event_id)
        guest_ref = event_ref.collection("participants").document(guest_id)

        @firestore.transactional
        def _release(transaction) -> None:
            guest_snap = guest_ref.get(transaction=transaction)
            if not guest_snap.exists:
                return
            remaining = max(int(guest_snap.to_dict().get("uploadCount") or 0) - 1, 0)
            if drop_guest and remaining == 0:
                transaction.delete(guest_ref)
                transaction.update(event_ref, {"activeGuests": firestore.Increment(-1)})
            else:
                transaction.update(guest_ref, {"uploadCount": remaining})

        _release(fs.transaction())


# -------- Photo repository --------

class PhotoRepo:
    @staticmethod
    def create_sql(db: Session, photo: Photo) -> Photo:
        db.add(photo)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(photo)
        return photo

    @staticmethod
    def get_sql(db: Session, event_id: str, photo_id: str) -> Optional[Photo]:
        return db.query(Photo).filter(Photo.event_id == event_id, Photo.id == photo_id).first()

    @staticmethod
    def delete_record_sql(db: Session, event_id: str, photo_id: str) -> Optional[str]:
        """Delete a photo row and give its upload slot back; returns the blob path"""
        photo = PhotoRepo.get_sql(db, event_id, photo_id)
        if not photo:
            return None
        storage_path = photo.storage_path
        db.execute(
            update(Guest)
            .where(Guest.event_id == event_id, Guest.guest_id == photo.guest_id, Guest.upload_count > 0)
            .values(upload_count=Guest.upload_count - 1)
            .execution_options(synchronize_session=False)
        )
        db.delete(photo)
        db.commit()
        return storage_path

    @staticmethod
    def list_sql(db: Session, event_id: str, since: Optional[datetime] = None) -> List[Photo]:
        query = db.query(Photo).filter(Photo.event_id == event_id)
        if since is not None:
            query = query.filter(Photo.created_at > since)
        return query.order_by(Photo.created_at.desc(), Photo.id.desc()).all()

    @staticmethod
    def exists_sql(db: Session, event_id: str, photo_id: str) -> bool:
        return PhotoRepo.get_sql(db, event_id, photo_id) is not None

    @staticmethod
    def counts_by_guest_sql(db: Session, event_id: str) -> Dict[str, int]:
        rows = db.query(Photo.guest_id, func.count(Photo.id)).filter(
            Photo.event_id == event_id
        ).group_by(Photo.guest_id).all()
        return {guest_id: count for guest_id, count in rows}

    @staticmethod
    def reconcile_counters_sql(db: Session, event_id: str) -> Dict[str, Any]:
        """Recompute counters from the guest and photo rows"""
        counts = PhotoRepo.counts_by_guest_sql(db, event_id)
        guests = db.query(Guest).filter(Guest.event_id == event_id).all()
        corrected = 0
        for guest in guests:
            actual = counts.get(guest.guest_id, 0)
            if guest.upload_count != actual:
                guest.upload_count = actual
                corrected += 1
        event = EventRepo.get_sql(db, event_id)
        event.guest_count = len(guests)
        db.commit()
        return {"guest_count": len(guests), "guests_corrected": corrected}

    # Firestore photo docs under collection events/{event_id}/photos
    @staticmethod
    def new_id_fs(event_id: str) -> str:
        fs = get_firestore_client()
        return fs.collection("events").document(event_id).collection("photos").document().id

    @staticmethod
    def create_fs(event_id: str, photo_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        fs = get_firestore_client()
        ref = fs.collection("events").document(event_id).collection("photos").document(photo_id)
        ref.set({
            "storagePath": data["storage_path"],
            "url": data["url"],
            "guestId": data["guest_id"],
            "author": data.get("author"),
            "message": data.get("message"),
            "createdAt": firestore.SERVER_TIMESTAMP,
        })
        return PhotoRepo._doc_to_dict(event_id, ref.get())

    @staticmethod
    def delete_record_fs(event_id: str, photo_id: str) -> Optional[str]:
        fs = get_firestore_client()
        event_ref = fs.collection("events").document(event_id)
        photo_ref = event_ref.collection("photos").document(photo_id)

        @firestore.transactional
        def _delete(transaction) -> Optional[str]:
            photo_snap = photo_ref.get(transaction=transaction)
            if not photo_snap.exists:
                return None
            data = photo_snap.to_dict()
            guest_ref = event_ref.collection("participants").document(data.get("guestId") or RESYNCED_GUEST_ID)
            guest_snap = guest_ref.get(transaction=transaction)
            if guest_snap.exists and int(guest_snap.to_dict().get("uploadCount") or 0) > 0:
                transaction.update(guest_ref, {"uploadCount": firestore.Increment(-1)})
            transaction.delete(photo_ref)
            return data.get("storagePath") or ""

        return _delete(fs.transaction())

    @staticmethod
    def list_fs(event_id: str, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        fs = get_firestore_client()
        query = fs.collection("events").document(event_id).collection("photos")
        if since is not None:
            query = query.where("createdAt", ">", since)
        docs = query.order_by("createdAt", direction=firestore.Query.DESCENDING).get()
        return [PhotoRepo._doc_to_dict(event_id, d) for d in docs]

    @staticmethod
    def exists_fs(event_id: str, photo_id: str) -> bool:
        fs = get_firestore_client()
        return fs.collection("events").document(event_id).collection("photos").document(photo_id).get().exists

    @staticmethod
    def reconcile_counters_fs(event_id: str) -> Dict[str, Any]:
        fs = get_firestore_client()
        event_ref = fs.collection("events").document(event_id)
        counts: Dict[str, int] = {}
        for photo in event_ref.collection("photos").stream():
            guest_id = photo.to_dict().get("guestId")
            counts[guest_id] = counts.get(guest_id, 0) + 1
        guests = list(event_ref.collection("participants").stream())
        corrected = 0
        for guest in guests:
            actual = counts.get(guest.id, 0)
            if int(guest.to_dict().get("uploadCount") or 0) != actual:
                guest.reference.update({"uploadCount": actual})
                corrected += 1
        event_ref.update({"activeGuests": len(guests)})
        return {"guest_count": len(guests), "guests_corrected": corrected}

    @staticmethod
    def _doc_to_dict(event_id: str, doc) -> Dict[str, Any]:
        data = doc.to_dict()
        return {
            "id": doc.id,
            "event_id": event_id,
            "guest_id": data.get("guestId") or "",
            "storage_path": data.get("storagePath") or "",
            "url": data.get("url"),
            "message": data.get("message"),
            "author": data.get("author"),
            "created_at": data.get("createdAt") or datetime.utcnow(),
        }
