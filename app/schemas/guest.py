"""
Guest-related Pydantic schemas
"""

from typing import Optional
from pydantic import BaseModel

class PhotoUploadRequest(BaseModel):
    """Photo submitted from the guest camera/upload page"""
    guest_id: str
    photo: str  # data:image/<type>;base64,<data>
    message: Optional[str] = None
    author: Optional[str] = None

class GuestUploadInfo(BaseModel):
    """Remaining quota shown in the guest UI; upload_limit 0 means unlimited"""
    upload_limit: int
    upload_count: int
