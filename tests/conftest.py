"""
Shared fixtures: SQLite test database, local photo store and sample events
"""

import base64
import io
from datetime import datetime

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.db import Base
from app.models import Event
from app.services.storage import LocalPhotoStore

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_event_photos.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def local_backends(monkeypatch):
    """Run every test against SQLAlchemy and the filesystem store"""
    monkeypatch.setattr(settings, "USE_FIREBASE", False)


@pytest.fixture
def session_factory():
    """Create the schema and hand out the session factory (for threaded tests)"""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def photo_store(tmp_path):
    return LocalPhotoStore(tmp_path / "media", base_url="http://testserver")


@pytest.fixture
def make_event(db_session):
    """Factory inserting an event row with the given limits"""
    def _make(event_id="wedding-2024", max_guests=0, photo_upload_limit=0, **fields):
        event = Event(
            id=event_id,
            name=fields.pop("name", "Test Wedding"),
            owner=fields.pop("owner", "client@example.com"),
            storage_path_id=fields.pop("storage_path_id", event_id),
            start_date=fields.pop("start_date", datetime(2024, 6, 15)),
            max_guests=max_guests,
            photo_upload_limit=photo_upload_limit,
            guest_count=0,
            **fields
        )
        db_session.add(event)
        db_session.commit()
        return event
    return _make


@pytest.fixture
def make_photo_data_url():
    """Factory for small, valid image data URLs"""
    def _make(image_format="PNG", size=(4, 4), color=(200, 30, 30)):
        buffer = io.BytesIO()
        Image.new("RGB", size, color).save(buffer, format=image_format)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/{image_format.lower()};base64,{encoded}"
    return _make


@pytest.fixture
def photo_data_url(make_photo_data_url):
    return make_photo_data_url()
