"""
Typed operation results for the attendance services.

Every documented failure comes back as a ``ServiceResult`` with an
``AttendanceError`` attached, never as an exception. Callers branch on
``result.success`` and ``result.error.kind``.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    profile_incomplete = "ProfileIncomplete"
    event_not_found = "EventNotFound"
    event_not_active = "EventNotActive"
    window_not_open = "WindowNotOpen"
    window_closed = "WindowClosed"
    location_too_far = "LocationTooFar"
    duplicate_submission = "DuplicateSubmission"
    check_in_required = "CheckInRequired"
    already_verified = "AlreadyVerified"
    forbidden_scope = "ForbiddenScope"
    invalid_transition = "InvalidTransition"
    audit_write_failure = "AuditWriteFailure"
    record_not_found = "RecordNotFound"
    validation_failed = "ValidationFailed"
    media_upload_failed = "MediaUploadFailed"
    export_too_large = "ExportTooLarge"


class AttendanceError(BaseModel):
    """Stable error kind plus a human-readable reason"""
    kind: ErrorKind
    message: str
    boundary: Optional[datetime] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "boundary": self.boundary.isoformat() if self.boundary else None,
            "details": self.details
        }


class ServiceResult(BaseModel):
    """Outcome of a submission, verification or appeal"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    record: Optional[Any] = None
    error: Optional[AttendanceError] = None
    # Set when the primary transition committed but its audit entry did not
    audit_error: Optional[AttendanceError] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, record: Any = None, message: Optional[str] = None) -> "ServiceResult":
        return cls(success=True, record=record, message=message)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        boundary: Optional[datetime] = None,
        **details: Any
    ) -> "ServiceResult":
        return cls(
            success=False,
            error=AttendanceError(
                kind=kind, message=message, boundary=boundary, details=details
            )
        )
