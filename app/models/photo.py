"""
Photo model
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.core.db import Base

class Photo(Base):
    __tablename__ = "photos"

    id = Column(String(64), primary_key=True, index=True)
    event_id = Column(String(100), ForeignKey("events.id"), nullable=False, index=True)
    # Not a foreign key: resynced photos carry guest_id="resynced"
    guest_id = Column(String(100), nullable=False, index=True)
    storage_path = Column(String(500), nullable=False)
    url = Column(String(1000), nullable=False)
    message = Column(Text, nullable=True)
    author = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    event = relationship("Event", back_populates="photos")
