"""
Event model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship

from app.core.db import Base

class Event(Base):
    __tablename__ = "events"

    id = Column(String(100), primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    owner = Column(String(255), nullable=False, index=True)  # account email
    partner_id = Column(String(100), nullable=True)
    storage_path_id = Column(String(100), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)

    is_test = Column(Boolean, default=False)
    paid = Column(Boolean, default=False)
    photos_published = Column(Boolean, default=False)

    # 0 means unlimited for both limits
    max_guests = Column(Integer, nullable=False, default=0)
    photo_upload_limit = Column(Integer, nullable=False, default=24)

    # Only ever changed by the admission transaction or reconciliation
    guest_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    guests = relationship("Guest", back_populates="event", cascade="all, delete-orphan")
    photos = relationship("Photo", back_populates="event", cascade="all, delete-orphan")
