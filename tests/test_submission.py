from datetime import datetime, timedelta
from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from geoattend.db.models import AttendanceRecord, AuditLog
from geoattend.db.repository import AttendanceRepository
from geoattend.enums import AttendancePhase, AuditEventType, EventStatus, VerificationStatus
from geoattend.services.attendance_service import AttendanceService
from geoattend.services.audit_service import AuditService
from geoattend.services.cache_service import ATTENDANCE_TAGS
from geoattend.services.profile_service import ProfileService
from geoattend.services.results import ErrorKind
from conftest import DURING_CHECK_OUT, MEDIA, FakeMediaService

CHECK_IN = AttendancePhase.check_in
CHECK_OUT = AttendancePhase.check_out


def records(db):
    return db.query(AttendanceRecord).all()


class FailingAuditService(AuditService):
    def _write(self, db, entry):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))


class StaleRepository(AttendanceRepository):
    """First read misses the existing record, like a request that lost a race"""

    def __init__(self):
        self.stale_reads = 1

    def get_by_pair(self, db, event_id, user_id):
        if self.stale_reads:
            self.stale_reads -= 1
            return None
        return super().get_by_pair(db, event_id, user_id)


# ============================================================
# CHECK-IN DISPOSITIONS
# ============================================================

def test_check_in_near_venue_is_auto_approved(db, seed, submit, clock, cache, media):
    result = submit(seed.event, seed.student, meters=10.0)

    assert result.success
    record = result.record
    assert record.verification_status == VerificationStatus.approved.value
    assert record.verified_at == clock.now
    assert record.verified_by_id is None
    assert record.check_in_submitted_at == clock.now
    assert record.check_in_distance == 10.0
    assert record.check_in_ip_address == "10.0.0.7"
    assert record.check_in_user_agent == "pytest-agent"
    assert record.check_in_front_photo.startswith("https://media.test/attendance/")
    assert record.check_out_submitted_at is None
    assert len(media.uploaded) == 3
    assert cache.calls == [ATTENDANCE_TAGS]


def test_check_in_in_review_band_is_pending(db, seed, submit):
    result = submit(seed.event, seed.student, meters=50.0)

    assert result.success
    assert result.record.verification_status == VerificationStatus.pending.value
    assert result.record.verified_at is None


def test_check_in_between_90_and_100_is_recorded_as_rejected(db, seed, submit):
    result = submit(seed.event, seed.student, meters=95.0)

    assert result.success
    assert result.record.verification_status == VerificationStatus.rejected.value
    assert result.record.verified_at is None
    assert result.record.verified_by_id is None


def test_check_in_beyond_ceiling_is_refused(db, seed, submit, media, cache):
    result = submit(seed.event, seed.student, meters=150.0)

    assert not result.success
    assert result.error.kind == ErrorKind.location_too_far
    assert result.error.details["distance"] == 150.0
    assert records(db) == []
    assert media.uploaded == []
    assert cache.calls == []


def test_check_in_writes_registration_audit(db, seed, submit):
    result = submit(seed.event, seed.student, meters=50.0)

    entries = db.query(AuditLog).all()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.event_type == AuditEventType.registration.value
    assert entry.user_id == seed.student.id
    assert entry.ip_address == "10.0.0.7"
    assert entry.metadata_["attendance_id"] == result.record.id
    assert entry.metadata_["phase"] == "check-in"
    assert entry.metadata_["distance_from_venue"] == 50.0
    assert entry.metadata_["verification_status"] == "Pending"
    assert entry.metadata_["auto_verified"] is False


# ============================================================
# PRECONDITIONS
# ============================================================

def test_incomplete_profile_checked_first(db, seed, submit):
    result = submit(SimpleNamespace(id=999), seed.newcomer)

    assert result.error.kind == ErrorKind.profile_incomplete


def test_unknown_event(db, seed, submit):
    result = submit(SimpleNamespace(id=999), seed.student)

    assert result.error.kind == ErrorKind.event_not_found


def test_cancelled_event(db, seed, submit):
    seed.event.status = EventStatus.cancelled.value
    db.commit()

    result = submit(seed.event, seed.student)

    assert result.error.kind == ErrorKind.event_not_active
    assert records(db) == []


def test_check_in_before_window(db, seed, submit, clock):
    clock.set(datetime(2026, 3, 2, 8, 59, 59))
    result = submit(seed.event, seed.student)

    assert result.error.kind == ErrorKind.window_not_open
    assert result.error.boundary == datetime(2026, 3, 2, 9, 0)


def test_check_in_at_closing_instant_is_accepted(db, seed, submit, clock):
    clock.set(datetime(2026, 3, 2, 9, 30))
    assert submit(seed.event, seed.student).success


def test_check_in_just_after_closing_instant(db, seed, submit, clock):
    clock.set(datetime(2026, 3, 2, 9, 30) + timedelta(microseconds=1))
    result = submit(seed.event, seed.student)

    assert result.error.kind == ErrorKind.window_closed
    assert result.error.boundary == datetime(2026, 3, 2, 9, 30)


def test_window_checked_before_distance(db, seed, submit, clock):
    clock.set(datetime(2026, 3, 2, 10, 0))
    result = submit(seed.event, seed.student, meters=500.0)

    assert result.error.kind == ErrorKind.window_closed


# ============================================================
# IDEMPOTENCY
# ============================================================

def test_second_check_in_is_duplicate(db, seed, submit, media):
    first = submit(seed.event, seed.student, meters=50.0)
    second = submit(seed.event, seed.student, meters=5.0)

    assert first.success
    assert second.error.kind == ErrorKind.duplicate_submission
    assert len(records(db)) == 1
    assert records(db)[0].check_in_distance == 50.0
    assert len(media.uploaded) == 3


def test_check_out_requires_check_in(db, seed, submit, clock):
    clock.set(DURING_CHECK_OUT)
    result = submit(seed.event, seed.student, phase=CHECK_OUT)

    assert result.error.kind == ErrorKind.check_in_required
    assert records(db) == []


def test_pre_created_slot_is_filled_in_place(db, seed, submit):
    db.add(AttendanceRecord(event_id=seed.event.id, user_id=seed.student.id))
    db.commit()

    result = submit(seed.event, seed.student, meters=10.0)

    assert result.success
    assert len(records(db)) == 1
    assert result.record.verification_status == VerificationStatus.approved.value


def test_lost_insert_race_returns_duplicate_and_removes_media(db, seed, submit, clock, cache, media):
    assert submit(seed.event, seed.student, meters=10.0).success
    uploads_before = list(media.uploaded)

    racer = AttendanceService(
        repository=StaleRepository(),
        media=media,
        audit=AuditService(),
        cache_invalidator=cache,
        profiles=ProfileService(),
        clock=clock
    )
    result = submit(seed.event, seed.student, meters=60.0, service=racer)

    assert result.error.kind == ErrorKind.duplicate_submission
    orphaned = media.uploaded[len(uploads_before):]
    assert len(orphaned) == 3
    assert media.deleted == orphaned
    record = records(db)[0]
    assert record.check_in_distance == 10.0
    assert record.verification_status == VerificationStatus.approved.value


# ============================================================
# CHECK-OUT
# ============================================================

def test_check_out_keeps_check_in_status(db, seed, submit, clock):
    submit(seed.event, seed.student, meters=50.0)
    clock.set(DURING_CHECK_OUT)

    result = submit(seed.event, seed.student, phase=CHECK_OUT, meters=5.0)

    assert result.success
    record = result.record
    assert record.verification_status == VerificationStatus.pending.value
    assert record.check_out_submitted_at == DURING_CHECK_OUT
    assert record.check_out_distance == 5.0
    assert record.check_in_distance == 50.0

    entry = db.query(AuditLog).order_by(AuditLog.id.desc()).first()
    assert entry.metadata_["phase"] == "check-out"
    assert entry.metadata_["check_out_disposition"] == "Approved"
    assert entry.metadata_["verification_status"] == "Pending"


def test_check_out_beyond_ceiling_leaves_record_untouched(db, seed, submit, clock):
    submit(seed.event, seed.student, meters=10.0)
    clock.set(DURING_CHECK_OUT)

    result = submit(seed.event, seed.student, phase=CHECK_OUT, meters=200.0)

    assert result.error.kind == ErrorKind.location_too_far
    record = records(db)[0]
    assert record.check_out_submitted_at is None
    assert record.verification_status == VerificationStatus.approved.value


def test_second_check_out_is_duplicate(db, seed, submit, clock):
    submit(seed.event, seed.student)
    clock.set(DURING_CHECK_OUT)
    assert submit(seed.event, seed.student, phase=CHECK_OUT).success

    clock.advance(minutes=5)
    result = submit(seed.event, seed.student, phase=CHECK_OUT)

    assert result.error.kind == ErrorKind.duplicate_submission


def test_check_out_during_check_in_window_not_open(db, seed, submit):
    submit(seed.event, seed.student)
    result = submit(seed.event, seed.student, phase=CHECK_OUT)

    assert result.error.kind == ErrorKind.window_not_open
    assert result.error.boundary == datetime(2026, 3, 2, 10, 30)


# ============================================================
# PORT FAILURES
# ============================================================

def test_media_failure_records_nothing(db, seed, clock, cache, submit):
    media = FakeMediaService(fail_suffix="_signature")
    service = AttendanceService(
        repository=AttendanceRepository(),
        media=media,
        audit=AuditService(),
        cache_invalidator=cache,
        profiles=ProfileService(),
        clock=clock
    )

    result = submit(seed.event, seed.student, service=service)

    assert result.error.kind == ErrorKind.media_upload_failed
    assert records(db) == []
    assert len(media.uploaded) == 2
    assert media.deleted == media.uploaded
    assert cache.calls == []


def test_audit_failure_keeps_submission(db, seed, clock, cache, media, submit):
    service = AttendanceService(
        repository=AttendanceRepository(),
        media=media,
        audit=FailingAuditService(),
        cache_invalidator=cache,
        profiles=ProfileService(),
        clock=clock
    )

    result = submit(seed.event, seed.student, service=service)

    assert result.success
    assert result.audit_error.kind == ErrorKind.audit_write_failure
    assert result.audit_error.details["event_type"] == "REGISTRATION"
    assert len(records(db)) == 1
    assert db.query(AuditLog).count() == 0
    assert cache.calls == [ATTENDANCE_TAGS]


def test_get_duplicate_status(db, seed, submit, attendance):
    assert attendance.get_duplicate_status(db, seed.event.id, seed.student.id) is None

    submit(seed.event, seed.student)

    record = attendance.get_duplicate_status(db, seed.event.id, seed.student.id)
    assert record.user_id == seed.student.id
    assert attendance.get_duplicate_status(db, seed.event.id, seed.classmate.id) is None


def test_participants_are_independent(db, seed, submit):
    assert submit(seed.event, seed.student, meters=10.0).success
    assert submit(seed.event, seed.classmate, meters=70.0).success
    assert {r.user_id for r in records(db)} == {seed.student.id, seed.classmate.id}


def test_out_of_range_coordinates(db, seed, attendance):
    result = attendance.submit_attendance(
        db,
        event_id=seed.event.id,
        participant_id=seed.student.id,
        phase=CHECK_IN,
        latitude=91.0,
        longitude=125.0,
        media=MEDIA
    )

    assert result.error.kind == ErrorKind.validation_failed
    assert records(db) == []


def test_auto_rejection_is_not_reported_as_verified(db, seed, submit):
    submit(seed.event, seed.student, meters=95.0)

    entry = db.query(AuditLog).one()
    assert entry.metadata_["verification_status"] == "Rejected"
    assert entry.metadata_["auto_verified"] is False
