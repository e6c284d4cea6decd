"""
Shared enumerations for attendance, events and audit tags
"""
from enum import Enum


class VerificationStatus(str, Enum):
    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class EventStatus(str, Enum):
    active = "Active"
    completed = "Completed"
    cancelled = "Cancelled"


class UserRole(str, Enum):
    student = "Student"
    moderator = "Moderator"
    administrator = "Administrator"


class AttendancePhase(str, Enum):
    check_in = "check-in"
    check_out = "check-out"


class AuditEventType(str, Enum):
    registration = "REGISTRATION"
    attendance_verified = "ATTENDANCE_VERIFIED"
    attendance_rejected = "ATTENDANCE_REJECTED"
    attendance_appealed = "ATTENDANCE_APPEALED"
    event_completed = "EVENT_COMPLETED"


class CacheTag(str, Enum):
    attendance = "attendance"
    analytics = "analytics"
    events = "events"
