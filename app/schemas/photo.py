"""
Photo-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class PhotoRecord(BaseModel):
    """A stored photo"""
    id: str
    event_id: str
    guest_id: str
    url: str
    storage_path: str
    message: Optional[str] = None
    author: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class PhotoSummary(BaseModel):
    """Photo as shown in the gallery and slideshow"""
    id: str
    url: str
    message: str = ""
    author: str
    timestamp: datetime

class ResyncReport(BaseModel):
    processed: int = 0
    linked: int = 0
    failed: int = 0
