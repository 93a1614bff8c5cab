"""
Guest model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.db import Base

class Guest(Base):
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(100), ForeignKey("events.id"), nullable=False, index=True)
    guest_id = Column(String(100), nullable=False)  # client-generated, opaque
    name = Column(String(255), default="Anonymous")
    upload_count = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    event = relationship("Event", back_populates="guests")

    __table_args__ = (
        UniqueConstraint("event_id", "guest_id", name="uq_guest_per_event"),
    )
