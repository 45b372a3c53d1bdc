import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import Column, String, Text, Boolean, JSON, DateTime, Index


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


# Base class for all models
class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=True)
    fcm_token = Column(Text, nullable=True)
    role = Column(String(50), nullable=True)
    blood_group = Column(String(8), nullable=True)


class BloodRequest(Base):
    __tablename__ = "requests"
    id = Column(String(64), primary_key=True, default=new_id)
    blood_group = Column(String(8), nullable=True)
    urgency = Column(String(20), default="normal", nullable=False)
    location = Column(String(255), nullable=True)
    hospital = Column(String(255), nullable=True)
    requester_id = Column(String(64), nullable=False, index=True)
    patient_name = Column(String(255), nullable=True)
    status = Column(String(20), default="open", nullable=False, index=True)
    required_date = Column(DateTime, nullable=True)
    responders = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    reference_id = Column(String(64), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_notifications_type_reference", "type", "reference_id"),)
