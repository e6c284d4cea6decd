"""
SQLAlchemy ORM Models for the GeoAttend service
"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime,
    ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from geoattend.db.database import Base
from geoattend.enums import EventStatus, UserRole, VerificationStatus

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(String(20), nullable=False, default=UserRole.student.value)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    # Relationships
    profile = relationship("UserProfile", back_populates="user", uselist=False)
    events_created = relationship("Event", back_populates="created_by")


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    student_id = Column(String(50))
    department = Column(String(100))
    course = Column(String(100))
    year_level = Column(Integer)
    section = Column(String(50))
    contact_number = Column(String(30))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    user = relationship("User", back_populates="profile")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    venue_name = Column(String(255))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    venue_latitude = Column(Float, nullable=False)
    venue_longitude = Column(Float, nullable=False)
    check_in_buffer_mins = Column(Integer, nullable=False, default=30)
    check_out_buffer_mins = Column(Integer, nullable=False, default=30)
    status = Column(String(20), nullable=False, default=EventStatus.active.value)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relationships
    created_by = relationship("User", back_populates="events_created")
    attendance_records = relationship("AttendanceRecord", back_populates="event")

    __table_args__ = (
        Index('idx_event_status_end', 'status', 'end_time'),
    )


class AttendanceRecord(Base):
    """One row per (event, participant); check-in and check-out slots fill in place"""
    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # Check-in
    check_in_submitted_at = Column(DateTime)
    check_in_latitude = Column(Float)
    check_in_longitude = Column(Float)
    check_in_distance = Column(Float)
    check_in_front_photo = Column(Text)
    check_in_back_photo = Column(Text)
    check_in_signature = Column(Text)
    check_in_ip_address = Column(String(64))
    check_in_user_agent = Column(Text)
    # Check-out
    check_out_submitted_at = Column(DateTime)
    check_out_latitude = Column(Float)
    check_out_longitude = Column(Float)
    check_out_distance = Column(Float)
    check_out_front_photo = Column(Text)
    check_out_back_photo = Column(Text)
    check_out_signature = Column(Text)
    check_out_ip_address = Column(String(64))
    check_out_user_agent = Column(Text)
    # Verification
    verification_status = Column(
        String(20), nullable=False, default=VerificationStatus.pending.value
    )
    verified_by_id = Column(Integer, ForeignKey("users.id"))
    verified_at = Column(DateTime)
    dispute_note = Column(Text)
    resolution_notes = Column(Text)
    appeal_message = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relationships
    event = relationship("Event", back_populates="attendance_records")
    user = relationship("User", foreign_keys=[user_id])
    verified_by = relationship("User", foreign_keys=[verified_by_id])

    __table_args__ = (
        UniqueConstraint('event_id', 'user_id', name='unique_event_user_attendance'),
        Index('idx_attendance_status', 'verification_status'),
        Index('idx_attendance_check_in', 'check_in_submitted_at'),
    )


class AuditLog(Base):
    """Append-only audit trail for attendance state transitions"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    event_type = Column(String(50), nullable=False)
    success = Column(Boolean, default=True, nullable=False)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    ip_address = Column(String(64))
    user_agent = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index('idx_audit_log_user', 'user_id'),
        Index('idx_audit_log_type', 'event_type'),
        Index('idx_audit_log_created', 'created_at'),
    )
