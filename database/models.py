"""
SQLAlchemy Models for the Attendance System

Defines the database schema for profiles and attendance records.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Float, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    """
    User profile table.

    Attributes:
        id: Principal identifier (UUID string)
        email: Login and notification address
        password_hash: PBKDF2 hash, "salt$hexdigest"
        full_name: Display name
        roll_number: Unique roll / employee number
        face_photos: Retrieval URLs of stored enrollment photos
    """
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(200), nullable=False)
    roll_number = Column(String(50), unique=True, nullable=False)
    face_photos = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Profile(id='{self.id}', roll_number='{self.roll_number}')>"


class AttendanceRecord(Base):
    """
    Attendance records table. Append-only: rows are never updated or deleted.

    Attributes:
        id: Record identifier (UUID string)
        submission_id: Client or server generated idempotency key
        user_id: Owning profile
        confidence_score: Detector confidence for the captured face
        status: 'present' or 'absent'
        face_vector: Captured face descriptor
        image_url: Time-limited retrieval URL of the captured frame, if stored
    """
    __tablename__ = "attendance_records"

    id = Column(String(36), primary_key=True, default=_new_id)
    submission_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    confidence_score = Column(Float, nullable=True)
    status = Column(String(10), nullable=False)
    face_vector = Column(JSON, nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    def __repr__(self):
        return f"<AttendanceRecord(id='{self.id}', user_id='{self.user_id}', status='{self.status}')>"
