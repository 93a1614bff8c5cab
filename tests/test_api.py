"""
API tests for guest, public and admin routes
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from app.api.deps import photo_store as photo_store_dependency
from app.core.config import settings
from app.core.db import get_db
from app.services.repositories import GuestRepo
from app.utils.security import rate_limiter
from main import app


@pytest.fixture
def client(session_factory, photo_store):
    """Test client wired to the test database and a temporary photo store"""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[photo_store_dependency] = lambda: photo_store
    rate_limiter.reset()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        rate_limiter.reset()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {settings.ADMIN_TOKEN}"}


def _upload(client, photo_data_url, guest_id="guest-1", event_id="wedding-2024", **extra):
    return client.post(
        f"/guest/events/{event_id}/photos",
        json={"guest_id": guest_id, "photo": photo_data_url, **extra},
    )


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestGuestRoutes:
    def test_upload_photo(self, client, make_event, photo_data_url):
        make_event()

        response = _upload(client, photo_data_url, message="Congrats!", author="Sam")

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["message"] == "Congrats!"
        assert body["data"]["author"] == "Sam"
        assert "/media/events/wedding-2024/photos/" in body["data"]["url"]

    def test_event_full(self, client, make_event, photo_data_url):
        make_event(max_guests=1)
        _upload(client, photo_data_url, guest_id="g1")

        response = _upload(client, photo_data_url, guest_id="g2")

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error_code"] == "event_full"
        assert body["details"]["retryable"] is False

    def test_upload_limit_reached(self, client, make_event, photo_data_url):
        make_event(photo_upload_limit=1)
        _upload(client, photo_data_url)

        response = _upload(client, photo_data_url)

        assert response.status_code == 409
        assert response.json()["error_code"] == "upload_limit_reached"

    def test_unknown_event(self, client, photo_data_url):
        response = _upload(client, photo_data_url, event_id="missing")
        assert response.status_code == 404
        assert response.json()["error_code"] == "event_not_found"

    def test_invalid_payload(self, client, make_event):
        make_event()
        response = _upload(client, "data:image/png;base64,AAAA")
        assert response.status_code == 422
        assert response.json()["error_code"] == "invalid_payload"

    def test_missing_guest_identity(self, client, make_event, photo_data_url):
        make_event()
        response = _upload(client, photo_data_url, guest_id="")
        assert response.status_code == 400
        assert response.json()["error_code"] == "missing_guest_identity"

    def test_upload_rate_limited(self, client, monkeypatch, make_event, photo_data_url):
        make_event()
        monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 2)

        assert _upload(client, photo_data_url).status_code == 201
        assert _upload(client, photo_data_url).status_code == 201
        assert _upload(client, photo_data_url).status_code == 429

    def test_registry_failure_is_retryable(self, client, monkeypatch, make_event, photo_data_url):
        make_event()

        def locked(*args, **kwargs):
            raise OperationalError("UPDATE events", {}, Exception("database is locked"))

        monkeypatch.setattr(GuestRepo, "reserve_sql", staticmethod(locked))
        response = _upload(client, photo_data_url)

        assert response.status_code == 503
        body = response.json()
        assert body["error_code"] == "storage_error"
        assert body["details"]["retryable"] is True

    def test_join_event(self, client, make_event):
        make_event(max_guests=5)

        first = client.post("/guest/events/wedding-2024/join", json={"guest_id": "g1", "name": "Ana"})
        second = client.post("/guest/events/wedding-2024/join", json={"guest_id": "g1", "name": "Ana"})

        assert first.json()["data"] == {"new_guest": True}
        assert first.json()["message"] == "Welcome!"
        assert second.json()["data"] == {"new_guest": False}

    def test_upload_info(self, client, make_event, photo_data_url):
        make_event(photo_upload_limit=5)
        _upload(client, photo_data_url, guest_id="g1")
        _upload(client, photo_data_url, guest_id="g1")

        response = client.get("/guest/events/wedding-2024/upload-info", params={"guest_id": "g1"})

        assert response.status_code == 200
        assert response.json()["data"] == {"upload_limit": 5, "upload_count": 2}


class TestPublicRoutes:
    def test_slideshow_requires_paid_event(self, client, make_event):
        make_event(paid=False)
        response = client.get("/events/wedding-2024/slideshow")
        assert response.status_code == 403

    def test_slideshow_lists_photos(self, client, make_event, photo_data_url):
        make_event(paid=True)
        _upload(client, photo_data_url, guest_id="abc-1234")

        response = client.get("/events/wedding-2024/slideshow")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["count"] == 1
        assert data["photos"][0]["author"] == "Guest...1234"

    def test_gallery_requires_publication(self, client, make_event, admin_headers, photo_data_url):
        make_event()
        _upload(client, photo_data_url)

        assert client.get("/events/wedding-2024/gallery").status_code == 403

        client.patch("/admin/events/wedding-2024", json={"photos_published": True}, headers=admin_headers)
        response = client.get("/events/wedding-2024/gallery")

        assert response.status_code == 200
        assert response.json()["data"]["event_name"] == "Test Wedding"
        assert response.json()["data"]["count"] == 1

    def test_qr_code(self, client, make_event):
        make_event()
        response = client.get("/events/wedding-2024/qr.png")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    def test_qr_code_unknown_event(self, client):
        assert client.get("/events/missing/qr.png").status_code == 404

    def test_create_trial_account(self, client):
        response = client.post("/test-accounts", json={"email": "trial@example.com", "password": "s3cret!"})

        assert response.status_code == 201
        assert response.json()["data"]["event_id"].startswith("test-")

        again = client.post("/test-accounts", json={"email": "trial@example.com", "password": "s3cret!"})
        assert again.status_code == 409
        assert again.json()["error_code"] == "owner_already_exists"


class TestAdminRoutes:
    def test_rejects_wrong_token(self, client):
        response = client.get("/admin/events/wedding-2024", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    def test_create_event(self, client, admin_headers):
        response = client.post("/admin/events", headers=admin_headers, json={
            "name": "Corporate Party",
            "owner": "boss@example.com",
            "start_date": "2024-09-01T18:00:00",
            "client_password": "s3cret!",
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["max_guests"] == 0
        assert data["photo_upload_limit"] == 24

    def test_create_event_without_owner_password(self, client, admin_headers):
        response = client.post("/admin/events", headers=admin_headers, json={
            "name": "Corporate Party",
            "owner": "boss@example.com",
            "start_date": "2024-09-01T18:00:00",
        })
        assert response.status_code == 422
        assert response.json()["error_code"] == "owner_creation_requires_password"

    def test_delete_event_idempotent(self, client, admin_headers, make_event, photo_data_url):
        make_event()
        _upload(client, photo_data_url)

        first = client.delete("/admin/events/wedding-2024", headers=admin_headers)
        second = client.delete("/admin/events/wedding-2024", headers=admin_headers)

        assert first.status_code == 200
        assert first.json()["data"]["removed"] is True
        assert second.status_code == 200
        assert second.json()["data"]["removed"] is False

    def test_delete_photo(self, client, admin_headers, make_event, photo_data_url):
        make_event(photo_upload_limit=1)
        photo_id = _upload(client, photo_data_url).json()["data"]["id"]

        response = client.delete(f"/admin/events/wedding-2024/photos/{photo_id}", headers=admin_headers)

        assert response.json()["data"] == {"deleted_photo_id": photo_id, "removed": True}
        assert _upload(client, photo_data_url).status_code == 201

    def test_reconcile_and_resync(self, client, admin_headers, make_event, photo_data_url):
        make_event()
        _upload(client, photo_data_url)

        reconcile = client.post("/admin/events/wedding-2024/reconcile", headers=admin_headers)
        resync = client.post("/admin/events/wedding-2024/resync", headers=admin_headers)

        assert reconcile.json()["data"] == {"guest_count": 1, "guests_corrected": 0}
        assert resync.json()["data"] == {"processed": 1, "linked": 0, "failed": 0}


class TestSlideshowSocket:
    def test_connect_and_ping(self, client, make_event):
        make_event()
        with client.websocket_connect("/ws/events/wedding-2024") as websocket:
            hello = websocket.receive_json()
            assert hello["type"] == "connection"
            assert hello["event_id"] == "wedding-2024"

            websocket.send_json({"type": "ping", "timestamp": 42})
            assert websocket.receive_json() == {"type": "pong", "timestamp": 42}

    def test_unknown_event_closed(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/events/missing") as websocket:
                websocket.receive_json()
