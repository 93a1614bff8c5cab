"""
Photo blob storage gateway.

Two interchangeable backends share the ``PhotoStore`` interface: the Firebase
project's Cloud Storage bucket, and a local directory served by the app under
``/media`` for development and tests.
"""

from __future__ import annotations

import logging
import os
import shutil
from functools import lru_cache
from pathlib import Path
from typing import List

from app.core.config import settings

logger = logging.getLogger(__name__)

MEDIA_URL_PREFIX = "/media"


def event_prefix(storage_path_id: str) -> str:
    return f"events/{storage_path_id}/"


def photos_prefix(storage_path_id: str) -> str:
    return f"events/{storage_path_id}/photos/"


def photo_path(storage_path_id: str, photo_id: str, extension: str) -> str:
    return f"{photos_prefix(storage_path_id)}{photo_id}.{extension}"


class PhotoStore:
    """Opaque blob store with public-URL semantics"""

    def put(self, path: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def make_public(self, path: str) -> str:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def delete_by_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def list_paths(self, prefix: str) -> List[str]:
        raise NotImplementedError


class FirebasePhotoStore(PhotoStore):
    """Firebase Cloud Storage bucket backend"""

    def __init__(self, bucket=None):
        if bucket is None:
            from app.services.firebase_client import get_storage_bucket
            bucket = get_storage_bucket()
        self.bucket = bucket

    def put(self, path: str, data: bytes, content_type: str) -> None:
        blob = self.bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        logger.info(f"Uploaded blob gs://{self.bucket.name}/{path}")

    def make_public(self, path: str) -> str:
        blob = self.bucket.blob(path)
        blob.make_public()
        return blob.public_url

    def delete(self, path: str) -> None:
        self.bucket.blob(path).delete()
        logger.info(f"Deleted blob gs://{self.bucket.name}/{path}")

    def delete_by_prefix(self, prefix: str) -> int:
        blobs = list(self.bucket.list_blobs(prefix=prefix))
        for blob in blobs:
            blob.delete()
        logger.info(f"Deleted {len(blobs)} blobs under gs://{self.bucket.name}/{prefix}")
        return len(blobs)

    def exists(self, path: str) -> bool:
        return self.bucket.blob(path).exists()

    def list_paths(self, prefix: str) -> List[str]:
        return [blob.name for blob in self.bucket.list_blobs(prefix=prefix) if not blob.name.endswith("/")]


class LocalPhotoStore(PhotoStore):
    """Filesystem backend; public URLs point at the app's static mount"""

    def __init__(self, root: str | os.PathLike, base_url: str = ""):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if self.root.resolve() not in full.parents and full != self.root.resolve():
            raise ValueError(f"Path escapes storage root: {path}")
        return full

    def put(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)
        logger.info(f"Stored {len(data)} bytes ({content_type}) at {target}")

    def make_public(self, path: str) -> str:
        if not self.exists(path):
            raise FileNotFoundError(path)
        return f"{self.base_url}{MEDIA_URL_PREFIX}/{path}"

    def delete(self, path: str) -> None:
        self._resolve(path).unlink()

    def delete_by_prefix(self, prefix: str) -> int:
        paths = self.list_paths(prefix)
        for path in paths:
            self._resolve(path).unlink()
        directory = self._resolve(prefix.rstrip("/")) if prefix.strip("/") else None
        if directory is not None and directory.is_dir() and prefix.endswith("/"):
            shutil.rmtree(directory, ignore_errors=True)
        return len(paths)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def list_paths(self, prefix: str) -> List[str]:
        if not self.root.exists():
            return []
        paths = []
        for file in self.root.rglob("*"):
            if file.is_file():
                relative = file.relative_to(self.root).as_posix()
                if relative.startswith(prefix):
                    paths.append(relative)
        return sorted(paths)


@lru_cache(maxsize=1)
def get_photo_store() -> PhotoStore:
    """Backend matching the configured registry"""
    if settings.USE_FIREBASE:
        return FirebasePhotoStore()
    return LocalPhotoStore(settings.LOCAL_STORAGE_DIR, base_url=settings.BASE_URL)
