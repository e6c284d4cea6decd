"""
Attendance storage port

Concurrency rules live here rather than in the services:
- ``insert_if_absent`` relies on the (event_id, user_id) unique constraint;
  the loser of a concurrent insert gets False, never an overwrite.
- ``update_if`` applies a write only while its preconditions still hold and
  reports whether a row was changed.
"""
import logging
from typing import Any, Dict, Iterable, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from geoattend.db.models import AttendanceRecord, User

logger = logging.getLogger(__name__)


class AttendanceRepository:
    """SQLAlchemy-backed store for AttendanceRecord rows"""

    def get(self, db: Session, record_id: int) -> Optional[AttendanceRecord]:
        return db.query(AttendanceRecord).filter(AttendanceRecord.id == record_id).first()

    def get_by_pair(
        self,
        db: Session,
        event_id: int,
        user_id: int
    ) -> Optional[AttendanceRecord]:
        return db.query(AttendanceRecord).filter(
            AttendanceRecord.event_id == event_id,
            AttendanceRecord.user_id == user_id
        ).first()

    def review_query(self, db: Session):
        """Records with participant, profile, event and verifier preloaded"""
        return db.query(AttendanceRecord).options(
            selectinload(AttendanceRecord.user).selectinload(User.profile),
            selectinload(AttendanceRecord.event),
            selectinload(AttendanceRecord.verified_by)
        )

    def insert_if_absent(self, db: Session, record: AttendanceRecord) -> bool:
        """
        Insert ``record`` unless a row for its (event_id, user_id) exists.

        Returns True when inserted. Other integrity errors propagate.
        """
        db.add(record)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if self.get_by_pair(db, record.event_id, record.user_id) is None:
                raise
            logger.info(
                f"Attendance for event {record.event_id}, user {record.user_id} "
                f"already exists: {e.orig}"
            )
            return False
        db.refresh(record)
        return True

    def update_if(
        self,
        db: Session,
        record_id: int,
        conditions: Iterable[Any],
        values: Dict[str, Any]
    ) -> bool:
        """
        Apply ``values`` to the record only while every SQL condition in
        ``conditions`` still matches. Returns True when the row changed.
        """
        changed = db.query(AttendanceRecord).filter(
            AttendanceRecord.id == record_id,
            *conditions
        ).update(values, synchronize_session=False)
        db.commit()
        return changed == 1


# Singleton instance
attendance_repository = AttendanceRepository()
