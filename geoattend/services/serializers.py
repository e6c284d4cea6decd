"""
Plain-dict projections of attendance records
"""
from datetime import datetime
from typing import Any, Dict, Optional

from geoattend.db.models import AttendanceRecord

_PHASE_FIELDS = (
    "submitted_at", "latitude", "longitude", "distance",
    "front_photo", "back_photo", "signature",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _phase(record: AttendanceRecord, prefix: str) -> Optional[Dict[str, Any]]:
    if getattr(record, f"{prefix}_submitted_at") is None:
        return None
    data = {}
    for field in _PHASE_FIELDS:
        value = getattr(record, f"{prefix}_{field}")
        data[field] = _iso(value) if isinstance(value, datetime) else value
    return data


def serialize_record(record: AttendanceRecord) -> Dict[str, Any]:
    """Projection used by the HTTP layer and the export reader"""
    return {
        "id": record.id,
        "event_id": record.event_id,
        "user_id": record.user_id,
        "check_in": _phase(record, "check_in"),
        "check_out": _phase(record, "check_out"),
        "verification_status": record.verification_status,
        "verified_by_id": record.verified_by_id,
        "verified_at": _iso(record.verified_at),
        "dispute_note": record.dispute_note,
        "resolution_notes": record.resolution_notes,
        "appeal_message": record.appeal_message
    }


def _participant(record: AttendanceRecord) -> Optional[Dict[str, Any]]:
    user = record.user
    if user is None:
        return None
    profile = user.profile
    return {
        "id": user.id,
        "name": " ".join(part for part in (user.first_name, user.last_name) if part),
        "email": user.email,
        "student_id": profile.student_id if profile else None,
        "department": profile.department if profile else None,
        "year_level": profile.year_level if profile else None,
        "section": profile.section if profile else None
    }


def serialize_review_record(record: AttendanceRecord) -> Dict[str, Any]:
    """Record projection with participant, event and verifier details for reviewers"""
    data = serialize_record(record)
    event = record.event
    verifier = record.verified_by
    data["participant"] = _participant(record)
    data["event"] = {
        "id": event.id,
        "name": event.name,
        "venue_name": event.venue_name,
        "start_time": _iso(event.start_time),
        "end_time": _iso(event.end_time)
    } if event else None
    data["verified_by_name"] = (
        " ".join(part for part in (verifier.first_name, verifier.last_name) if part)
        if verifier else None
    )
    return data
