"""
Export Service - bounded batch reader for attendance exports

Rendering (CSV/PDF) happens elsewhere; this module only streams record
projections in fixed-size chunks and refuses oversized exports, both up
front and while reading.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from geoattend.config import settings
from geoattend.db.models import AttendanceRecord
from geoattend.enums import VerificationStatus
from geoattend.services.results import AttendanceError, ErrorKind, ServiceResult
from geoattend.services.serializers import serialize_record

logger = logging.getLogger(__name__)


class ExportFilters(BaseModel):
    """Filters accepted by the export reader"""
    event_ids: Optional[List[int]] = Field(None, min_length=1, max_length=50)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[VerificationStatus] = None

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        return self


class ExportTooLargeError(Exception):
    """Raised by the streaming reader when the export exceeds the record cap"""

    def __init__(self, error: AttendanceError):
        super().__init__(error.message)
        self.error = error


class ExportService:
    """Chunked, capped reader over attendance records"""

    def __init__(self, chunk_size: Optional[int] = None, max_records: Optional[int] = None):
        self.chunk_size = chunk_size or settings.EXPORT_CHUNK_SIZE
        self.max_records = max_records or settings.EXPORT_MAX_RECORDS

    def _query(self, db: Session, filters: ExportFilters):
        query = db.query(AttendanceRecord)
        if filters.event_ids:
            query = query.filter(AttendanceRecord.event_id.in_(filters.event_ids))
        if filters.start_date:
            query = query.filter(AttendanceRecord.check_in_submitted_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(AttendanceRecord.check_in_submitted_at <= filters.end_date)
        if filters.status:
            query = query.filter(AttendanceRecord.verification_status == filters.status.value)
        return query

    def _too_large(self, total: int) -> AttendanceError:
        return AttendanceError(
            kind=ErrorKind.export_too_large,
            message=(
                f"Export limit exceeded ({total} records). Maximum {self.max_records} "
                f"records allowed. Try filtering by event or date to reduce the dataset."
            ),
            details={"total": total, "max_records": self.max_records}
        )

    def prepare(self, db: Session, filters: ExportFilters) -> ServiceResult:
        """Count matching records and refuse exports above the cap"""
        total = self._query(db, filters).count()
        if total > self.max_records:
            return ServiceResult(success=False, error=self._too_large(total))
        return ServiceResult.ok(message=f"{total} records", record={"total": total})

    def iter_chunks(self, db: Session, filters: ExportFilters) -> Iterator[List[Dict[str, Any]]]:
        """
        Yield lists of at most ``chunk_size`` projections, ordered by id.

        Raises ExportTooLargeError before the first chunk when the filtered
        set is over the cap, and mid-stream if it grows past the cap while
        being read. Keyset pagination on the primary key keeps each chunk
        query cheap.
        """
        total = self._query(db, filters).count()
        if total > self.max_records:
            raise ExportTooLargeError(self._too_large(total))

        # Objects the caller already holds stay attached
        held_keys = set(db.identity_map.keys())
        emitted = 0
        last_id = 0
        while True:
            rows = (
                self._query(db, filters)
                .filter(AttendanceRecord.id > last_id)
                .order_by(AttendanceRecord.id)
                .limit(self.chunk_size)
                .all()
            )
            if not rows:
                return

            emitted += len(rows)
            if emitted > self.max_records:
                logger.warning(f"Export grew past {self.max_records} records while streaming")
                raise ExportTooLargeError(self._too_large(emitted))

            chunk = [serialize_record(row) for row in rows]
            last_id = rows[-1].id
            for row in rows:
                if inspect(row).identity_key not in held_keys:
                    db.expunge(row)
            yield chunk

    def iter_export_rows(self, db: Session, filters: ExportFilters) -> Iterator[Dict[str, Any]]:
        for chunk in self.iter_chunks(db, filters):
            yield from chunk


# Singleton instance
export_service = ExportService()
