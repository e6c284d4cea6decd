"""
Shared fixtures: in-memory SQLite database, seeded users and event,
fixed clock and recording fakes for the service ports.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_KEY", "test-api-key")

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from geoattend.db import models
from geoattend.db.database import Base
from geoattend.db.repository import AttendanceRepository
from geoattend.enums import AttendancePhase, EventStatus, UserRole
from geoattend.services.attendance_service import AttendanceService
from geoattend.services.audit_service import AuditService, RequestContext
from geoattend.services.cache_service import CacheInvalidator
from geoattend.services.media_service import MediaService, MediaUploadError, SubmissionMedia
from geoattend.services.profile_service import ProfileService
from geoattend.services.verification_service import VerificationService

VENUE_LAT = 9.787889
VENUE_LON = 125.494394
METERS_PER_DEGREE_LAT = 111194.92664455873

EVENT_START = datetime(2026, 3, 2, 9, 0)
EVENT_END = datetime(2026, 3, 2, 11, 0)
DURING_CHECK_IN = datetime(2026, 3, 2, 9, 10)
DURING_CHECK_OUT = datetime(2026, 3, 2, 10, 45)

MEDIA = SubmissionMedia(
    front_photo="data:image/jpeg;base64,ZnJvbnQ=",
    back_photo="data:image/jpeg;base64,YmFjaw==",
    signature="data:image/png;base64,c2lnbg=="
)
CONTEXT = RequestContext(ip_address="10.0.0.7", user_agent="pytest-agent")


def point_at(meters_north: float):
    """Coordinates ``meters_north`` due north of the venue"""
    return VENUE_LAT + meters_north / METERS_PER_DEGREE_LAT, VENUE_LON


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingCacheInvalidator(CacheInvalidator):
    def __init__(self):
        self.calls = []

    def invalidate(self, *tags):
        self.calls.append(tags)


class FakeMediaService(MediaService):
    """Upload service double; fails any blob whose name ends with ``fail_suffix``"""

    def __init__(self, fail_suffix=None):
        super().__init__()
        self.fail_suffix = fail_suffix
        self.uploaded = []
        self.deleted = []

    def upload(self, raw, folder, name):
        if self.fail_suffix and name.endswith(self.fail_suffix):
            raise MediaUploadError(f"Upload of {folder}/{name} failed: 503")
        uri = f"https://media.test/{folder}/{name}"
        self.uploaded.append(uri)
        return uri

    def delete(self, uri):
        self.deleted.append(uri)
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


def _add_user(db, email, role, profile=True):
    user = models.User(email=email, first_name=email.split("@")[0], role=role.value)
    db.add(user)
    db.flush()
    if profile:
        db.add(models.UserProfile(
            user_id=user.id,
            student_id=f"S-{user.id:05d}",
            department="College of Engineering"
        ))
    return user


@pytest.fixture
def seed(db):
    """Users in every role plus one Active event created by ``moderator``"""
    student = _add_user(db, "ana@campus.test", UserRole.student)
    classmate = _add_user(db, "ben@campus.test", UserRole.student)
    newcomer = _add_user(db, "cy@campus.test", UserRole.student, profile=False)
    moderator = _add_user(db, "mod@campus.test", UserRole.moderator)
    other_moderator = _add_user(db, "mod2@campus.test", UserRole.moderator)
    admin = _add_user(db, "admin@campus.test", UserRole.administrator)

    event = models.Event(
        name="Engineering Week Assembly",
        venue_name="Main Gymnasium",
        start_time=EVENT_START,
        end_time=EVENT_END,
        venue_latitude=VENUE_LAT,
        venue_longitude=VENUE_LON,
        check_in_buffer_mins=30,
        check_out_buffer_mins=30,
        status=EventStatus.active.value,
        created_by_id=moderator.id
    )
    db.add(event)
    db.commit()

    return SimpleNamespace(
        student=student,
        classmate=classmate,
        newcomer=newcomer,
        moderator=moderator,
        other_moderator=other_moderator,
        admin=admin,
        event=event
    )


@pytest.fixture
def clock():
    return FixedClock(DURING_CHECK_IN)


@pytest.fixture
def cache():
    return RecordingCacheInvalidator()


@pytest.fixture
def media():
    return FakeMediaService()


@pytest.fixture
def attendance(clock, cache, media):
    return AttendanceService(
        repository=AttendanceRepository(),
        media=media,
        audit=AuditService(),
        cache_invalidator=cache,
        profiles=ProfileService(),
        clock=clock
    )


@pytest.fixture
def verification(clock, cache):
    return VerificationService(
        repository=AttendanceRepository(),
        audit=AuditService(),
        cache_invalidator=cache,
        clock=clock
    )


@pytest.fixture
def submit(db, attendance):
    """Submit ``phase`` for ``user`` from ``meters`` north of the venue"""

    def _submit(event, user, phase=AttendancePhase.check_in, meters=10.0, service=None):
        latitude, longitude = point_at(meters)
        return (service or attendance).submit_attendance(
            db,
            event_id=event.id,
            participant_id=user.id,
            phase=phase,
            latitude=latitude,
            longitude=longitude,
            media=MEDIA,
            context=CONTEXT
        )

    return _submit
