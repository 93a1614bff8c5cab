"""
Event-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

class EventCreate(BaseModel):
    """Schema for creating an event"""
    id: Optional[str] = None
    name: str
    description: str = ""
    owner: EmailStr
    partner_id: Optional[str] = None
    storage_path_id: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    is_test: bool = False
    paid: bool = False
    photos_published: bool = False
    max_guests: Optional[int] = Field(None, ge=0)
    photo_upload_limit: Optional[int] = Field(None, ge=0)
    client_password: Optional[str] = None

class EventUpdate(BaseModel):
    """Schema for admin edits; unset fields are left untouched"""
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    paid: Optional[bool] = None
    photos_published: Optional[bool] = None
    max_guests: Optional[int] = Field(None, ge=0)
    photo_upload_limit: Optional[int] = Field(None, ge=0)

class EventResponse(BaseModel):
    """Event response"""
    id: str
    name: str
    description: Optional[str] = ""
    owner: str
    partner_id: Optional[str] = None
    storage_path_id: str
    start_date: datetime
    end_date: Optional[datetime] = None
    is_test: bool
    paid: bool
    photos_published: bool
    max_guests: int
    photo_upload_limit: int
    guest_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TrialAccountCreate(BaseModel):
    """Self-service trial account request"""
    email: EmailStr
    password: str = Field(..., min_length=6)
