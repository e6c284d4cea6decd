"""
Attendance API - submission, verification and appeal endpoints

Provides:
- POST /attendance/events/{event_id}/submit: Check-in or check-out with GPS and media
- GET /attendance/events/{event_id}/status: Existing record for a participant
- GET /attendance/events/{event_id}/counts: Cached status counts (reviewers)
- POST /attendance/{record_id}/verify: Approve or reject a Pending record (reviewers)
- POST /attendance/{record_id}/appeal: Re-open a Rejected record (owner)
- GET /attendance/events/{event_id}/records: Paged records of an event (reviewers)
- GET /attendance/mine: Paged records of the caller with status summary
- GET /attendance/{record_id}: One record with participant details (reviewers)
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from geoattend.dependencies import (
    Caller, get_attendance_service, get_caller, get_db, get_request_context,
    get_stats_service, get_verification_service, require_reviewer
)
from geoattend.enums import AttendancePhase, UserRole, VerificationStatus
from geoattend.services.attendance_service import AttendanceService
from geoattend.services.audit_service import RequestContext
from geoattend.services.media_service import SubmissionMedia
from geoattend.services.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page
from geoattend.services.results import ErrorKind, ServiceResult
from geoattend.services.serializers import serialize_record, serialize_review_record
from geoattend.services.stats_service import StatsService
from geoattend.services.verification_service import (
    MAX_APPEAL_LENGTH, MAX_NOTE_LENGTH, VerificationService
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/attendance", tags=["Attendance"])

ERROR_STATUS_CODES = {
    ErrorKind.profile_incomplete: 403,
    ErrorKind.event_not_found: 404,
    ErrorKind.event_not_active: 409,
    ErrorKind.window_not_open: 409,
    ErrorKind.window_closed: 409,
    ErrorKind.location_too_far: 422,
    ErrorKind.duplicate_submission: 409,
    ErrorKind.check_in_required: 409,
    ErrorKind.already_verified: 409,
    ErrorKind.forbidden_scope: 403,
    ErrorKind.invalid_transition: 409,
    ErrorKind.audit_write_failure: 500,
    ErrorKind.record_not_found: 404,
    ErrorKind.validation_failed: 422,
    ErrorKind.media_upload_failed: 502,
    ErrorKind.export_too_large: 413,
}


# ============================================================
# REQUEST MODELS
# ============================================================

class SubmitAttendanceRequest(BaseModel):
    """Request model for a check-in or check-out submission"""
    attendance_type: AttendancePhase = Field(..., description="'check-in' or 'check-out'")
    latitude: float = Field(..., ge=-90, le=90, description="Participant GPS latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Participant GPS longitude")
    front_photo: str = Field(..., min_length=1, description="Front photo (base64 data URI)")
    back_photo: str = Field(..., min_length=1, description="Back photo (base64 data URI)")
    signature: str = Field(..., min_length=1, description="Signature (base64 data URI)")

    class Config:
        json_schema_extra = {
            "example": {
                "attendance_type": "check-in",
                "latitude": 9.787889,
                "longitude": 125.494394,
                "front_photo": "data:image/jpeg;base64,...",
                "back_photo": "data:image/jpeg;base64,...",
                "signature": "data:image/png;base64,..."
            }
        }


class VerifyAttendanceRequest(BaseModel):
    """Reviewer decision on a Pending record"""
    decision: VerificationStatus = Field(..., description="'Approved' or 'Rejected'")
    dispute_note: Optional[str] = Field(None, max_length=MAX_NOTE_LENGTH)
    resolution_notes: Optional[str] = Field(None, max_length=MAX_NOTE_LENGTH)


class AppealAttendanceRequest(BaseModel):
    """Participant appeal of a Rejected record"""
    appeal_message: str = Field(..., max_length=MAX_APPEAL_LENGTH)


# ============================================================
# RESPONSE HELPERS
# ============================================================

def _data(record, serialize):
    if record is None:
        return None
    if isinstance(record, Page):
        return record.to_dict(serialize)
    return serialize(record)


def _respond(result: ServiceResult, serialize=serialize_record):
    """Translate a ServiceResult into the HTTP response body"""
    if not result.success:
        return JSONResponse(
            status_code=ERROR_STATUS_CODES.get(result.error.kind, 400),
            content={"success": False, "error": result.error.to_dict()}
        )

    body = {
        "success": True,
        "message": result.message,
        "data": _data(result.record, serialize)
    }
    if result.audit_error:
        body["audit_error"] = result.audit_error.to_dict()
    return body


# ============================================================
# ENDPOINTS
# ============================================================

@router.post("/events/{event_id}/submit")
def submit_attendance(
    event_id: int,
    request: SubmitAttendanceRequest,
    caller: Caller = Depends(get_caller),
    context: RequestContext = Depends(get_request_context),
    service: AttendanceService = Depends(get_attendance_service),
    db: Session = Depends(get_db)
):
    """
    Submit a check-in or check-out.

    Rules:
    - Profile must be complete and the event Active
    - Submission must fall inside the phase's window
    - Position must be within 100m of the venue
    - One check-in and one check-out per participant per event
    """
    result = service.submit_attendance(
        db=db,
        event_id=event_id,
        participant_id=caller.user_id,
        phase=request.attendance_type,
        latitude=request.latitude,
        longitude=request.longitude,
        media=SubmissionMedia(
            front_photo=request.front_photo,
            back_photo=request.back_photo,
            signature=request.signature
        ),
        context=context
    )
    return _respond(result)


@router.get("/events/{event_id}/status")
def get_attendance_status(
    event_id: int,
    user_id: Optional[int] = Query(None, description="Participant (defaults to caller)"),
    caller: Caller = Depends(get_caller),
    service: AttendanceService = Depends(get_attendance_service),
    db: Session = Depends(get_db)
):
    """Existing attendance record for the participant, or null"""
    target_user_id = user_id if user_id is not None else caller.user_id
    if target_user_id != caller.user_id and caller.role == UserRole.student:
        raise HTTPException(status_code=403, detail="You can only view your own attendance")

    record = service.get_duplicate_status(db, event_id, target_user_id)
    return {
        "success": True,
        "data": serialize_record(record) if record else None
    }


@router.get("/events/{event_id}/counts")
def get_attendance_counts(
    event_id: int,
    caller: Caller = Depends(require_reviewer),
    stats: StatsService = Depends(get_stats_service),
    db: Session = Depends(get_db)
):
    """Pending / Approved / Rejected counts for an event"""
    return {"success": True, "data": stats.get_status_counts(db, event_id)}


@router.post("/{record_id}/verify")
def verify_attendance(
    record_id: int,
    request: VerifyAttendanceRequest,
    caller: Caller = Depends(require_reviewer),
    context: RequestContext = Depends(get_request_context),
    service: VerificationService = Depends(get_verification_service),
    db: Session = Depends(get_db)
):
    """Approve or reject a Pending attendance record"""
    result = service.verify_attendance(
        db=db,
        record_id=record_id,
        reviewer_id=caller.user_id,
        reviewer_role=caller.role,
        decision=request.decision,
        dispute_note=request.dispute_note,
        resolution_notes=request.resolution_notes,
        context=context
    )
    return _respond(result)


@router.post("/{record_id}/appeal")
def appeal_attendance(
    record_id: int,
    request: AppealAttendanceRequest,
    caller: Caller = Depends(get_caller),
    context: RequestContext = Depends(get_request_context),
    service: VerificationService = Depends(get_verification_service),
    db: Session = Depends(get_db)
):
    """Appeal a Rejected attendance record"""
    result = service.appeal_attendance(
        db=db,
        record_id=record_id,
        participant_id=caller.user_id,
        message=request.appeal_message,
        context=context
    )
    return _respond(result)


@router.get("/events/{event_id}/records")
def list_event_attendance(
    event_id: int,
    status: Optional[VerificationStatus] = Query(None, description="Filter by verification status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    caller: Caller = Depends(require_reviewer),
    service: VerificationService = Depends(get_verification_service),
    db: Session = Depends(get_db)
):
    """Attendance records of an event, e.g. the Pending review queue"""
    result = service.list_event_records(
        db,
        event_id=event_id,
        reviewer_id=caller.user_id,
        reviewer_role=caller.role,
        status=status,
        page=page,
        limit=limit
    )
    return _respond(result, serialize=serialize_review_record)


@router.get("/mine")
def list_my_attendance(
    status: Optional[VerificationStatus] = Query(None, description="Filter by verification status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    caller: Caller = Depends(get_caller),
    service: AttendanceService = Depends(get_attendance_service),
    db: Session = Depends(get_db)
):
    """The caller's own attendance records with per-status totals"""
    result = service.list_my_records(
        db,
        participant_id=caller.user_id,
        status=status,
        page=page,
        limit=limit
    )
    return _respond(result, serialize=serialize_review_record)


@router.get("/{record_id}")
def get_attendance_for_verification(
    record_id: int,
    caller: Caller = Depends(require_reviewer),
    service: VerificationService = Depends(get_verification_service),
    db: Session = Depends(get_db)
):
    """Full record for the review screen"""
    result = service.get_for_verification(
        db,
        record_id=record_id,
        reviewer_id=caller.user_id,
        reviewer_role=caller.role
    )
    return _respond(result, serialize=serialize_review_record)
