"""
Service providers for route dependencies
"""

from fastapi import Depends

from app.services.admission_service import AdmissionService
from app.services.gallery_service import GalleryService
from app.services.lifecycle_service import LifecycleService
from app.services.storage import PhotoStore, get_photo_store


def photo_store() -> PhotoStore:
    return get_photo_store()


def admission_service(store: PhotoStore = Depends(photo_store)) -> AdmissionService:
    return AdmissionService(store)


def gallery_service(store: PhotoStore = Depends(photo_store)) -> GalleryService:
    return GalleryService(store)


def lifecycle_service(store: PhotoStore = Depends(photo_store)) -> LifecycleService:
    return LifecycleService(store)
