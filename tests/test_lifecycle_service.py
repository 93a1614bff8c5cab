"""
Tests for event creation, deletion, trial accounts and repair tools
"""

from datetime import datetime, timedelta

import pytest

from app.core.errors import (
    EventAlreadyExists,
    EventNotFound,
    InvalidPartner,
    OwnerAlreadyExists,
    OwnerCreationRequiresPassword,
)
from app.models import Account, Event, Guest, Partner, Photo
from app.schemas.event import EventCreate, EventUpdate
from app.services.admission_service import AdmissionService
from app.services.identity import IdentityProvider, verify_password
from app.services.lifecycle_service import LifecycleService
from app.services.repositories import RESYNCED_GUEST_ID, EventRepo, GuestRepo


@pytest.fixture
def lifecycle(photo_store):
    return LifecycleService(photo_store)


@pytest.fixture
def event_with_photos(db_session, photo_store, make_event, photo_data_url):
    """Event with two guests and three stored photos"""
    make_event(max_guests=10, photo_upload_limit=5)
    admission = AdmissionService(photo_store)
    records = [
        admission.submit_photo("wedding-2024", "g1", photo_data_url, db=db_session),
        admission.submit_photo("wedding-2024", "g1", photo_data_url, db=db_session),
        admission.submit_photo("wedding-2024", "g2", photo_data_url, db=db_session),
    ]
    return records


def _event_data(**overrides):
    data = {
        "name": "Summer Gala",
        "owner": "Client@Example.com",
        "start_date": datetime(2024, 7, 1, 19, 0),
    }
    data.update(overrides)
    return EventCreate(**data)


class TestCreateEvent:
    def test_new_owner_requires_password(self, db_session, lifecycle):
        with pytest.raises(OwnerCreationRequiresPassword):
            lifecycle.create_event(_event_data(), db=db_session)
        assert db_session.query(Event).count() == 0

    def test_creates_owner_account_and_event(self, db_session, lifecycle):
        event = lifecycle.create_event(_event_data(client_password="s3cret!"), db=db_session)

        account = db_session.query(Account).filter(Account.email == "client@example.com").first()
        assert account is not None
        assert verify_password("s3cret!", account.password_hash)
        assert event.owner == "client@example.com"
        assert event.storage_path_id == event.id
        assert event.guest_count == 0

    def test_defaults_for_clients_and_admins(self, db_session, lifecycle):
        IdentityProvider.create_account_sql(db_session, "client@example.com", "s3cret!")

        client_event = lifecycle.create_event(_event_data(), db=db_session)
        admin_event = lifecycle.create_event(_event_data(), db=db_session, default_max_guests=0)

        assert client_event.max_guests == 25
        assert client_event.photo_upload_limit == 24
        assert admin_event.max_guests == 0
        assert client_event.id != admin_event.id

    def test_explicit_limits_win(self, db_session, lifecycle):
        IdentityProvider.create_account_sql(db_session, "client@example.com", "s3cret!")
        event = lifecycle.create_event(_event_data(max_guests=0, photo_upload_limit=0), db=db_session)
        assert event.max_guests == 0
        assert event.photo_upload_limit == 0

    def test_duplicate_event_id(self, db_session, lifecycle, make_event):
        make_event()
        IdentityProvider.create_account_sql(db_session, "client@example.com", "s3cret!")
        with pytest.raises(EventAlreadyExists):
            lifecycle.create_event(_event_data(id="wedding-2024"), db=db_session)

    def test_duplicate_event_id_creates_no_owner(self, db_session, lifecycle, make_event):
        make_event()

        with pytest.raises(EventAlreadyExists):
            lifecycle.create_event(
                _event_data(id="wedding-2024", owner="new@example.com", client_password="s3cret!"), db=db_session
            )

        assert IdentityProvider.lookup_by_email_sql(db_session, "new@example.com") is None
        assert db_session.query(Account).count() == 0

    def test_failed_insert_removes_new_owner(self, db_session, lifecycle, monkeypatch):
        def broken_insert(*args, **kwargs):
            raise RuntimeError("insert failed")

        monkeypatch.setattr(EventRepo, "create_sql", staticmethod(broken_insert))

        with pytest.raises(RuntimeError):
            lifecycle.create_event(_event_data(client_password="s3cret!"), db=db_session)

        assert db_session.query(Account).count() == 0
        assert db_session.query(Event).count() == 0

    def test_failed_insert_keeps_existing_owner(self, db_session, lifecycle, monkeypatch):
        uid = IdentityProvider.create_account_sql(db_session, "client@example.com", "s3cret!")

        def broken_insert(*args, **kwargs):
            raise RuntimeError("insert failed")

        monkeypatch.setattr(EventRepo, "create_sql", staticmethod(broken_insert))

        with pytest.raises(RuntimeError):
            lifecycle.create_event(_event_data(), db=db_session)

        assert IdentityProvider.lookup_by_email_sql(db_session, "client@example.com") == uid

    def test_unknown_partner_rejected(self, db_session, lifecycle):
        with pytest.raises(InvalidPartner):
            lifecycle.create_event(_event_data(partner_id="acme", client_password="s3cret!"), db=db_session)
        assert db_session.query(Account).count() == 0

    def test_known_partner_accepted(self, db_session, lifecycle):
        db_session.add(Partner(id="acme", name="Acme Events"))
        db_session.commit()
        event = lifecycle.create_event(_event_data(partner_id="acme", client_password="s3cret!"), db=db_session)
        assert event.partner_id == "acme"


class TestReadAndUpdate:
    def test_get_event(self, db_session, lifecycle, make_event):
        make_event(max_guests=3, photo_upload_limit=2)
        event = lifecycle.get_event("wedding-2024", db=db_session)
        assert event.max_guests == 3
        assert event.photo_upload_limit == 2
        assert event.paid is False

    def test_get_unknown_event(self, db_session, lifecycle):
        with pytest.raises(EventNotFound):
            lifecycle.get_event("missing", db=db_session)

    def test_update_only_given_fields(self, db_session, lifecycle, make_event):
        make_event(max_guests=3, photo_upload_limit=2)
        event = lifecycle.update_event(
            "wedding-2024",
            EventUpdate(max_guests=50, photos_published=True, name=None),
            db=db_session,
        )
        assert event.max_guests == 50
        assert event.photos_published is True
        assert event.photo_upload_limit == 2
        assert event.name == "Test Wedding"

    def test_update_unknown_event(self, db_session, lifecycle):
        with pytest.raises(EventNotFound):
            lifecycle.update_event("missing", EventUpdate(paid=True), db=db_session)


class TestDeleteEvent:
    def test_delete_cascades(self, db_session, photo_store, lifecycle, event_with_photos):
        assert lifecycle.delete_event("wedding-2024", db=db_session) is True

        assert db_session.query(Event).count() == 0
        assert db_session.query(Guest).count() == 0
        assert db_session.query(Photo).count() == 0
        assert photo_store.list_paths("events/wedding-2024/") == []

    def test_delete_is_idempotent(self, db_session, lifecycle, event_with_photos):
        assert lifecycle.delete_event("wedding-2024", db=db_session) is True
        assert lifecycle.delete_event("wedding-2024", db=db_session) is False
        assert lifecycle.delete_event("never-existed", db=db_session) is False

    def test_other_events_untouched(self, db_session, photo_store, lifecycle, event_with_photos, make_event,
                                    photo_data_url):
        make_event(event_id="birthday")
        AdmissionService(photo_store).submit_photo("birthday", "g1", photo_data_url, db=db_session)

        lifecycle.delete_event("wedding-2024", db=db_session)

        assert db_session.query(Photo).filter(Photo.event_id == "birthday").count() == 1
        assert len(photo_store.list_paths("events/birthday/")) == 1
        assert GuestRepo.count_guests_sql(db_session, "birthday") == 1

    def test_test_event_removes_trial_owner(self, db_session, lifecycle):
        result = lifecycle.create_test_account("trial@example.com", "s3cret!", db=db_session)

        lifecycle.delete_event(result["event_id"], db=db_session)

        assert IdentityProvider.lookup_by_email_sql(db_session, "trial@example.com") is None

    def test_trial_owner_with_real_event_kept(self, db_session, lifecycle, make_event):
        result = lifecycle.create_test_account("trial@example.com", "s3cret!", db=db_session)
        make_event(event_id="real-party", owner="trial@example.com")

        lifecycle.delete_event(result["event_id"], db=db_session)

        assert IdentityProvider.lookup_by_email_sql(db_session, "trial@example.com") == result["user_id"]


class TestTrialAccounts:
    def test_create_test_account(self, db_session, lifecycle):
        result = lifecycle.create_test_account("Trial@Example.com", "s3cret!", db=db_session)

        assert result["event_id"].startswith("test-")
        event = lifecycle.get_event(result["event_id"], db=db_session)
        assert event.is_test is True
        assert event.paid is True
        assert event.photo_upload_limit == 0
        assert event.owner == "trial@example.com"
        assert event.end_date - event.start_date == timedelta(hours=24)

    def test_duplicate_trial_email(self, db_session, lifecycle):
        lifecycle.create_test_account("trial@example.com", "s3cret!", db=db_session)
        with pytest.raises(OwnerAlreadyExists):
            lifecycle.create_test_account("trial@example.com", "other-pass", db=db_session)
        assert db_session.query(Event).count() == 1

    def test_cleanup_expired_test_events(self, db_session, lifecycle, make_event):
        now = datetime(2024, 6, 20, 12, 0)
        make_event(event_id="test-expired", is_test=True, end_date=now - timedelta(hours=1))
        make_event(event_id="test-running", is_test=True, end_date=now + timedelta(hours=1))
        make_event(event_id="real-past", is_test=False, end_date=now - timedelta(days=3))

        deleted = lifecycle.cleanup_expired_test_events(now=now, db=db_session)

        assert deleted == ["test-expired"]
        remaining = {e.id for e in db_session.query(Event).all()}
        assert remaining == {"test-running", "real-past"}


class TestRepairTools:
    def test_resync_links_unrecorded_blobs(self, db_session, photo_store, lifecycle, event_with_photos):
        photo_store.put("events/wedding-2024/photos/lostphoto.jpg", b"jpeg-bytes", "image/jpeg")

        report = lifecycle.resync_photos("wedding-2024", db=db_session)

        assert report.processed == 4
        assert report.linked == 1
        assert report.failed == 0
        photo = db_session.query(Photo).filter(Photo.id == "lostphoto").one()
        assert photo.guest_id == RESYNCED_GUEST_ID
        assert photo.message == "Resynced from storage"
        assert photo.url.endswith("/media/events/wedding-2024/photos/lostphoto.jpg")

    def test_resync_is_repeatable(self, db_session, photo_store, lifecycle, event_with_photos):
        photo_store.put("events/wedding-2024/photos/lostphoto.jpg", b"jpeg-bytes", "image/jpeg")
        lifecycle.resync_photos("wedding-2024", db=db_session)

        report = lifecycle.resync_photos("wedding-2024", db=db_session)

        assert report.linked == 0
        assert db_session.query(Photo).count() == 4

    def test_resync_unknown_event(self, db_session, lifecycle):
        with pytest.raises(EventNotFound):
            lifecycle.resync_photos("missing", db=db_session)

    def test_reconcile_counters(self, db_session, lifecycle, event_with_photos):
        event = db_session.query(Event).filter(Event.id == "wedding-2024").one()
        event.guest_count = 7
        guest = GuestRepo.get_sql(db_session, "wedding-2024", "g1")
        guest.upload_count = 0
        db_session.commit()

        result = lifecycle.reconcile_counters("wedding-2024", db=db_session)

        assert result == {"guest_count": 2, "guests_corrected": 1}
        assert GuestRepo.count_guests_sql(db_session, "wedding-2024") == 2
        assert GuestRepo.count_uploads_sql(db_session, "wedding-2024", "g1") == 2
