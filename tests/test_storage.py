"""
Tests for the local photo store and storage error classification
"""

import pytest

from app.core.errors import StorageError
from app.services.storage import event_prefix, photo_path, photos_prefix


def test_path_layout():
    assert event_prefix("abc") == "events/abc/"
    assert photos_prefix("abc") == "events/abc/photos/"
    assert photo_path("abc", "p1", "jpeg") == "events/abc/photos/p1.jpeg"


def test_put_and_make_public(photo_store):
    photo_store.put("events/abc/photos/p1.png", b"data", "image/png")

    assert photo_store.exists("events/abc/photos/p1.png")
    assert photo_store.make_public("events/abc/photos/p1.png") == \
        "http://testserver/media/events/abc/photos/p1.png"


def test_make_public_requires_blob(photo_store):
    with pytest.raises(FileNotFoundError):
        photo_store.make_public("events/abc/photos/missing.png")


def test_delete_by_prefix_only_touches_prefix(photo_store):
    photo_store.put("events/abc/photos/p1.png", b"1", "image/png")
    photo_store.put("events/abc/photos/p2.png", b"2", "image/png")
    photo_store.put("events/abcd/photos/p3.png", b"3", "image/png")

    removed = photo_store.delete_by_prefix("events/abc/")

    assert removed == 2
    assert photo_store.list_paths("events/") == ["events/abcd/photos/p3.png"]


def test_delete_by_prefix_on_empty_folder(photo_store):
    assert photo_store.delete_by_prefix("events/nothing/") == 0


def test_paths_cannot_escape_root(photo_store):
    with pytest.raises(ValueError):
        photo_store.put("../outside.png", b"x", "image/png")


@pytest.mark.parametrize("exc, reason", [
    (PermissionError("denied"), StorageError.REASON_PERMISSION_DENIED),
    (Exception("Caller does not have storage.objects.create access"), StorageError.REASON_PERMISSION_DENIED),
    (Exception("Could not refresh access token"), StorageError.REASON_TOKEN_REFRESH),
    (Exception("The specified bucket does not exist."), StorageError.REASON_BUCKET_NOT_FOUND),
    (TimeoutError("timed out"), StorageError.REASON_UNAVAILABLE),
])
def test_storage_error_classification(exc, reason):
    error = StorageError.from_exception(exc)
    assert error.reason == reason
    assert error.code == "storage_error"
    assert error.retryable is True
