"""
Attendance Submission Service - check-in / check-out with location verification

A submission passes, in order:
1. Coordinate ranges and profile completeness
2. Event lookup and Active status
3. Phase window (inclusive boundaries)
4. Hard distance ceiling (100 m), nothing persisted beyond it
5. Idempotency (one check-in, one check-out, check-in before check-out)

Only then are media uploaded and exactly one state change persisted,
followed by one audit entry and a cache invalidation.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from geoattend.clock import utcnow
from geoattend.db.models import AttendanceRecord, Event
from geoattend.db.repository import AttendanceRepository, attendance_repository
from geoattend.enums import AttendancePhase, AuditEventType, VerificationStatus
from geoattend.services.audit_service import AuditService, RequestContext, audit_service
from geoattend.services.cache_service import ATTENDANCE_TAGS, CacheInvalidator, cache_service
from geoattend.services.disposition import (
    SUBMISSION_CEILING_M, classify_distance, exceeds_submission_ceiling
)
from geoattend.services.geo_service import haversine_distance_m, is_valid_coordinates
from geoattend.services.media_service import (
    MediaRefs, MediaService, MediaUploadError, SubmissionMedia, media_service
)
from geoattend.services.pagination import DEFAULT_PAGE_SIZE, check_page_params, paginate
from geoattend.services.profile_service import ProfileService, profile_service
from geoattend.services.results import ErrorKind, ServiceResult
from geoattend.services.window_service import WindowPhase, check_phase_window, classify

logger = logging.getLogger(__name__)


class AttendanceService:
    """Service for attendance submissions"""

    def __init__(
        self,
        repository: AttendanceRepository = attendance_repository,
        media: MediaService = media_service,
        audit: AuditService = audit_service,
        cache_invalidator: CacheInvalidator = cache_service,
        profiles: ProfileService = profile_service,
        clock: Callable[[], datetime] = utcnow
    ):
        self.repository = repository
        self.media = media
        self.audit = audit
        self.cache_invalidator = cache_invalidator
        self.profiles = profiles
        self.clock = clock

    def submit_attendance(
        self,
        db: Session,
        event_id: int,
        participant_id: int,
        phase: AttendancePhase,
        latitude: float,
        longitude: float,
        media: SubmissionMedia,
        context: Optional[RequestContext] = None
    ) -> ServiceResult:
        """
        Submit a check-in or check-out for ``participant_id`` at ``event_id``.

        Returns a ServiceResult carrying the stored record on success, or the
        first failed precondition.
        """
        context = context or RequestContext()
        now = self.clock()

        if not is_valid_coordinates(latitude, longitude):
            return ServiceResult.fail(
                ErrorKind.validation_failed,
                "Latitude must be within [-90, 90] and longitude within [-180, 180]",
                field="coordinates"
            )

        if not self.profiles.has_complete_profile(db, participant_id):
            return ServiceResult.fail(
                ErrorKind.profile_incomplete,
                "Profile incomplete: Please complete your profile before checking in"
            )

        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            return ServiceResult.fail(ErrorKind.event_not_found, "Event not found")

        state = classify(event, now)
        if state.phase == WindowPhase.event_not_active:
            return ServiceResult.fail(
                ErrorKind.event_not_active,
                f"Event is {event.status}",
                status=event.status
            )

        window_failure = check_phase_window(state, phase)
        if window_failure:
            return window_failure

        distance = haversine_distance_m(
            latitude, longitude, event.venue_latitude, event.venue_longitude
        )
        if exceeds_submission_ceiling(distance):
            return ServiceResult.fail(
                ErrorKind.location_too_far,
                f"Location verification failed: Not within {SUBMISSION_CEILING_M:g}m "
                f"of venue (distance: {distance:.1f}m)",
                distance=distance
            )

        existing = self.repository.get_by_pair(db, event_id, participant_id)
        guard_failure = self._check_idempotency(existing, phase)
        if guard_failure:
            return guard_failure

        folder = f"attendance/{event.id}/{participant_id}"
        base_name = (
            f"{phase.value}_{participant_id}_{int(now.timestamp())}_"
            f"{existing.id if existing else 'new'}"
        )
        try:
            refs = self.media.upload_submission_media(media, folder, base_name)
        except MediaUploadError as e:
            logger.error(f"Media upload failed for event {event_id}, user {participant_id}: {e}")
            return ServiceResult.fail(
                ErrorKind.media_upload_failed,
                "Photo or signature upload failed; nothing was recorded. Please try again."
            )

        try:
            if phase == AttendancePhase.check_in:
                record_id, audit_metadata = self._persist_check_in(
                    db, event, participant_id, existing, latitude, longitude,
                    distance, refs, context, now
                )
            else:
                record_id, audit_metadata = self._persist_check_out(
                    db, event, existing, latitude, longitude,
                    distance, refs, context, now
                )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Attendance persistence failed for event {event_id}, user {participant_id}: {e}")
            self.media.delete_quietly(refs)
            raise

        if record_id is None:
            # Lost a race against a concurrent submission of the same phase
            self.media.delete_quietly(refs)
            return self._duplicate(phase)

        record = self.repository.get(db, record_id)

        audit_error = self.audit.record(
            db,
            actor_id=participant_id,
            event_type=AuditEventType.registration,
            metadata=audit_metadata,
            context=context
        )
        self.cache_invalidator.invalidate(*ATTENDANCE_TAGS)

        logger.info(
            f"{phase.value} recorded: user {participant_id} at event {event_id}, "
            f"{distance:.1f}m, status {record.verification_status}"
        )

        result = ServiceResult.ok(record, message=f"{phase.value} recorded")
        result.audit_error = audit_error
        return result

    def get_duplicate_status(
        self,
        db: Session,
        event_id: int,
        participant_id: int
    ) -> Optional[AttendanceRecord]:
        """The participant's record for this event, or None"""
        return self.repository.get_by_pair(db, event_id, participant_id)

    def list_my_records(
        self,
        db: Session,
        participant_id: int,
        status: Optional[VerificationStatus] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE
    ) -> ServiceResult:
        """
        Page through the participant's own records, newest check-in first.

        The summary counts every status regardless of the ``status`` filter.
        """
        invalid = check_page_params(page, limit)
        if invalid:
            return invalid

        query = self.repository.review_query(db).filter(AttendanceRecord.user_id == participant_id)
        if status:
            query = query.filter(AttendanceRecord.verification_status == status.value)
        query = query.order_by(
            AttendanceRecord.check_in_submitted_at.desc().nullslast(),
            AttendanceRecord.id.desc()
        )
        return ServiceResult.ok(
            paginate(query, page, limit, summary=self._status_summary(db, participant_id))
        )

    @staticmethod
    def _status_summary(db: Session, participant_id: int) -> Dict[str, int]:
        summary = {status.value.lower(): 0 for status in VerificationStatus}
        rows = db.query(
            AttendanceRecord.verification_status,
            func.count(AttendanceRecord.id)
        ).filter(
            AttendanceRecord.user_id == participant_id
        ).group_by(AttendanceRecord.verification_status).all()
        for status, count in rows:
            summary[status.lower()] = count
        return summary

    def _check_idempotency(
        self,
        existing: Optional[AttendanceRecord],
        phase: AttendancePhase
    ) -> Optional[ServiceResult]:
        if phase == AttendancePhase.check_in:
            if existing and existing.check_in_submitted_at:
                return self._duplicate(phase)
            return None

        if not existing or not existing.check_in_submitted_at:
            return ServiceResult.fail(
                ErrorKind.check_in_required,
                "You must check in before you can check out"
            )
        if existing.check_out_submitted_at:
            return self._duplicate(phase)
        return None

    @staticmethod
    def _duplicate(phase: AttendancePhase) -> ServiceResult:
        label = "Check-in" if phase == AttendancePhase.check_in else "Check-out"
        return ServiceResult.fail(
            ErrorKind.duplicate_submission,
            f"{label} has already been recorded for this event."
        )

    def _persist_check_in(
        self,
        db: Session,
        event: Event,
        participant_id: int,
        existing: Optional[AttendanceRecord],
        latitude: float,
        longitude: float,
        distance: float,
        refs: MediaRefs,
        context: RequestContext,
        now: datetime
    ):
        disposition = classify_distance(distance)
        values = {
            "check_in_submitted_at": now,
            "check_in_latitude": latitude,
            "check_in_longitude": longitude,
            "check_in_distance": distance,
            "check_in_front_photo": refs.front_photo,
            "check_in_back_photo": refs.back_photo,
            "check_in_signature": refs.signature,
            "check_in_ip_address": context.ip_address,
            "check_in_user_agent": context.user_agent,
            "verification_status": disposition.status.value
        }
        if disposition.status == VerificationStatus.approved:
            # Auto-verified: no human reviewer
            values["verified_at"] = now
            values["verified_by_id"] = None

        before_status = existing.verification_status if existing else None

        if existing:
            # Pre-created placeholder slot
            persisted = self.repository.update_if(
                db,
                existing.id,
                [AttendanceRecord.check_in_submitted_at.is_(None)],
                values
            )
            record_id = existing.id if persisted else None
        else:
            record = AttendanceRecord(event_id=event.id, user_id=participant_id, **values)
            persisted = self.repository.insert_if_absent(db, record)
            record_id = record.id if persisted else None

        metadata = {
            "attendance_id": record_id,
            "event_id": event.id,
            "event_name": event.name,
            "phase": AttendancePhase.check_in.value,
            "distance_from_venue": distance,
            "previous_status": before_status,
            "verification_status": disposition.status.value,
            "auto_verified": disposition.auto_verified,
            "reason": disposition.reason
        }
        return record_id, metadata

    def _persist_check_out(
        self,
        db: Session,
        event: Event,
        existing: AttendanceRecord,
        latitude: float,
        longitude: float,
        distance: float,
        refs: MediaRefs,
        context: RequestContext,
        now: datetime
    ):
        # Verification status stays as decided at check-in
        values = {
            "check_out_submitted_at": now,
            "check_out_latitude": latitude,
            "check_out_longitude": longitude,
            "check_out_distance": distance,
            "check_out_front_photo": refs.front_photo,
            "check_out_back_photo": refs.back_photo,
            "check_out_signature": refs.signature,
            "check_out_ip_address": context.ip_address,
            "check_out_user_agent": context.user_agent
        }
        status = existing.verification_status
        check_out = classify_distance(distance)
        persisted = self.repository.update_if(
            db,
            existing.id,
            [
                AttendanceRecord.check_in_submitted_at.isnot(None),
                AttendanceRecord.check_out_submitted_at.is_(None)
            ],
            values
        )

        metadata = {
            "attendance_id": existing.id,
            "event_id": event.id,
            "event_name": event.name,
            "phase": AttendancePhase.check_out.value,
            "distance_from_venue": distance,
            "check_out_disposition": check_out.status.value,
            "previous_status": status,
            "verification_status": status,
            "reason": check_out.reason
        }
        return (existing.id if persisted else None), metadata


# Singleton instance
attendance_service = AttendanceService()
