"""
Verification Service - reviewer decisions and participant appeals

States:
    Pending  -> Approved | Rejected   (reviewer, verify_attendance)
    Rejected -> Pending               (owning participant, appeal_attendance)

Transitions are conditional writes on the expected prior status, so two
reviewers racing on the same Pending record cannot both win; the loser
gets AlreadyVerified.

Reviewers find work through list_event_records and get_for_verification,
scoped the same way as verify_attendance.
"""
import logging
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.orm import Session

from geoattend.clock import utcnow
from geoattend.db.models import AttendanceRecord, Event
from geoattend.db.repository import AttendanceRepository, attendance_repository
from geoattend.enums import AuditEventType, UserRole, VerificationStatus
from geoattend.services.audit_service import AuditService, RequestContext, audit_service
from geoattend.services.cache_service import ATTENDANCE_TAGS, CacheInvalidator, cache_service
from geoattend.services.pagination import DEFAULT_PAGE_SIZE, check_page_params, paginate
from geoattend.services.results import ErrorKind, ServiceResult

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 1000
MIN_APPEAL_LENGTH = 10
MAX_APPEAL_LENGTH = 1000


class VerificationService:
    """Service for the attendance verification state machine"""

    def __init__(
        self,
        repository: AttendanceRepository = attendance_repository,
        audit: AuditService = audit_service,
        cache_invalidator: CacheInvalidator = cache_service,
        clock: Callable[[], datetime] = utcnow
    ):
        self.repository = repository
        self.audit = audit
        self.cache_invalidator = cache_invalidator
        self.clock = clock

    def verify_attendance(
        self,
        db: Session,
        record_id: int,
        reviewer_id: int,
        reviewer_role: UserRole,
        decision: VerificationStatus,
        dispute_note: Optional[str] = None,
        resolution_notes: Optional[str] = None,
        context: Optional[RequestContext] = None
    ) -> ServiceResult:
        """
        Approve or reject a Pending record.

        Moderators may only review records of events they created;
        Administrators may review any record.
        """
        now = self.clock()

        invalid = self._validate_decision(decision, dispute_note, resolution_notes)
        if invalid:
            return invalid

        record = self.repository.get(db, record_id)
        if not record:
            return ServiceResult.fail(ErrorKind.record_not_found, "Attendance record not found")

        event = db.query(Event).filter(Event.id == record.event_id).first()
        if not self._can_review(reviewer_id, reviewer_role, event):
            return ServiceResult.fail(
                ErrorKind.forbidden_scope,
                "Forbidden: You can only verify attendances for events you created"
            )

        if record.verification_status != VerificationStatus.pending.value:
            return self._already_verified(record)

        values = {
            "verification_status": decision.value,
            "verified_by_id": reviewer_id,
            "verified_at": now
        }
        if dispute_note and dispute_note.strip():
            values["dispute_note"] = dispute_note.strip()
        if resolution_notes and resolution_notes.strip():
            values["resolution_notes"] = resolution_notes.strip()

        changed = self.repository.update_if(
            db,
            record.id,
            [AttendanceRecord.verification_status == VerificationStatus.pending.value],
            values
        )
        if not changed:
            db.refresh(record)
            logger.info(f"Verification race lost on attendance {record_id} by reviewer {reviewer_id}")
            return self._already_verified(record)

        record = self.repository.get(db, record_id)
        event_type = (
            AuditEventType.attendance_verified
            if decision == VerificationStatus.approved
            else AuditEventType.attendance_rejected
        )
        audit_error = self.audit.record(
            db,
            actor_id=reviewer_id,
            event_type=event_type,
            metadata={
                "attendance_id": record.id,
                "event_id": record.event_id,
                "event_name": event.name if event else None,
                "participant_id": record.user_id,
                "previous_status": VerificationStatus.pending.value,
                "new_status": decision.value,
                "check_in_distance": record.check_in_distance,
                "dispute_note": values.get("dispute_note"),
                "resolution_notes": values.get("resolution_notes"),
                "reason": values.get("dispute_note") or values.get("resolution_notes")
            },
            context=context
        )
        self.cache_invalidator.invalidate(*ATTENDANCE_TAGS)

        logger.info(f"Attendance {record_id} {decision.value.lower()} by reviewer {reviewer_id}")

        result = ServiceResult.ok(
            record, message=f"Attendance {decision.value.lower()} successfully"
        )
        result.audit_error = audit_error
        return result

    def appeal_attendance(
        self,
        db: Session,
        record_id: int,
        participant_id: int,
        message: str,
        context: Optional[RequestContext] = None
    ) -> ServiceResult:
        """
        Re-open a Rejected record for another review pass.

        The dispute note and resolution notes are kept as history.
        """
        message = (message or "").strip()
        if not MIN_APPEAL_LENGTH <= len(message) <= MAX_APPEAL_LENGTH:
            return ServiceResult.fail(
                ErrorKind.validation_failed,
                f"Appeal message must be between {MIN_APPEAL_LENGTH} and "
                f"{MAX_APPEAL_LENGTH} characters",
                field="appeal_message"
            )

        record = self.repository.get(db, record_id)
        if not record:
            return ServiceResult.fail(ErrorKind.record_not_found, "Attendance record not found")

        if record.user_id != participant_id:
            return ServiceResult.fail(
                ErrorKind.forbidden_scope,
                "You can only appeal your own attendance records"
            )

        if record.verification_status != VerificationStatus.rejected.value:
            return self._not_appealable(record)

        changed = self.repository.update_if(
            db,
            record.id,
            [AttendanceRecord.verification_status == VerificationStatus.rejected.value],
            {
                "verification_status": VerificationStatus.pending.value,
                "appeal_message": message
            }
        )
        if not changed:
            db.refresh(record)
            return self._not_appealable(record)

        record = self.repository.get(db, record_id)
        audit_error = self.audit.record(
            db,
            actor_id=participant_id,
            event_type=AuditEventType.attendance_appealed,
            metadata={
                "attendance_id": record.id,
                "event_id": record.event_id,
                "participant_id": participant_id,
                "previous_status": VerificationStatus.rejected.value,
                "new_status": VerificationStatus.pending.value,
                "check_in_distance": record.check_in_distance,
                "dispute_note": record.dispute_note,
                "appeal_message_length": len(message),
                "reason": "participant appeal"
            },
            context=context
        )
        self.cache_invalidator.invalidate(*ATTENDANCE_TAGS)

        logger.info(f"Attendance {record_id} appealed by user {participant_id}")

        result = ServiceResult.ok(
            record,
            message="Appeal submitted successfully. A moderator will review your request."
        )
        result.audit_error = audit_error
        return result

    def list_event_records(
        self,
        db: Session,
        event_id: int,
        reviewer_id: int,
        reviewer_role: UserRole,
        status: Optional[VerificationStatus] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> ServiceResult:
        """
        Page through an event's records, newest check-in first.

        Same scope as verify_attendance: the event's creator or an
        Administrator. ``result.record`` is a Page.
        """
        invalid = check_page_params(page, limit)
        if invalid:
            return invalid

        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            return ServiceResult.fail(ErrorKind.event_not_found, "Event not found")

        if not self._can_review(reviewer_id, reviewer_role, event):
            return ServiceResult.fail(
                ErrorKind.forbidden_scope,
                "Forbidden: You can only view attendance for events you created"
            )

        query = self.repository.review_query(db).filter(AttendanceRecord.event_id == event_id)
        if status:
            query = query.filter(AttendanceRecord.verification_status == status.value)
        query = query.order_by(
            AttendanceRecord.check_in_submitted_at.desc().nullslast(),
            AttendanceRecord.id.desc()
        )
        return ServiceResult.ok(paginate(query, page, limit))

    def get_for_verification(
        self,
        db: Session,
        record_id: int,
        reviewer_id: int,
        reviewer_role: UserRole
    ) -> ServiceResult:
        """One record with participant and event details, for the review screen"""
        if reviewer_role not in (UserRole.moderator, UserRole.administrator):
            return ServiceResult.fail(
                ErrorKind.forbidden_scope, "Moderator or Administrator role required"
            )

        record = self.repository.review_query(db).filter(AttendanceRecord.id == record_id).first()
        if not record:
            return ServiceResult.fail(ErrorKind.record_not_found, "Attendance record not found")

        if not self._can_review(reviewer_id, reviewer_role, record.event):
            return ServiceResult.fail(
                ErrorKind.forbidden_scope,
                "Forbidden: You can only verify attendances for events you created"
            )
        return ServiceResult.ok(record)

    @staticmethod
    def _validate_decision(
        decision: VerificationStatus,
        dispute_note: Optional[str],
        resolution_notes: Optional[str]
    ) -> Optional[ServiceResult]:
        if decision not in (VerificationStatus.approved, VerificationStatus.rejected):
            return ServiceResult.fail(
                ErrorKind.validation_failed,
                "Decision must be Approved or Rejected",
                field="decision"
            )
        if decision == VerificationStatus.rejected and not (dispute_note or "").strip():
            return ServiceResult.fail(
                ErrorKind.validation_failed,
                "Dispute notes are required when rejecting attendance",
                field="dispute_note"
            )
        for field, value in (("dispute_note", dispute_note), ("resolution_notes", resolution_notes)):
            if value and len(value) > MAX_NOTE_LENGTH:
                return ServiceResult.fail(
                    ErrorKind.validation_failed,
                    f"{field} cannot exceed {MAX_NOTE_LENGTH} characters",
                    field=field
                )
        return None

    @staticmethod
    def _can_review(
        reviewer_id: int,
        reviewer_role: UserRole,
        event: Optional[Event]
    ) -> bool:
        if reviewer_role == UserRole.administrator:
            return True
        if reviewer_role == UserRole.moderator:
            return event is not None and event.created_by_id == reviewer_id
        return False

    @staticmethod
    def _already_verified(record: AttendanceRecord) -> ServiceResult:
        return ServiceResult.fail(
            ErrorKind.already_verified,
            "Attendance already verified",
            current_status=record.verification_status,
            verified_by_id=record.verified_by_id,
            verified_at=record.verified_at.isoformat() if record.verified_at else None
        )

    @staticmethod
    def _not_appealable(record: AttendanceRecord) -> ServiceResult:
        return ServiceResult.fail(
            ErrorKind.invalid_transition,
            "Only rejected attendance can be appealed",
            current_status=record.verification_status
        )


# Singleton instance
verification_service = VerificationService()
