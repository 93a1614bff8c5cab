"""
Owner account and partner models (local identity provider)
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from app.core.db import Base

class Account(Base):
    __tablename__ = "accounts"

    uid = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), default="New Client")
    role = Column(String(50), default="Client")
    event_limit = Column(Integer, default=1)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Partner(Base):
    __tablename__ = "partners"

    id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
