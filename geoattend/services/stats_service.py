"""
Stats Service - cached attendance status counts per event
"""
import logging
from typing import Dict, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from geoattend.db.models import AttendanceRecord
from geoattend.enums import CacheTag, VerificationStatus
from geoattend.services.cache_service import RedisCache, cache_service

logger = logging.getLogger(__name__)

STATUS_COUNTS_TTL_SEC = 60


class StatsService:
    """Derived statistics, recomputed on demand after invalidation"""

    def __init__(self, cache: RedisCache = cache_service):
        self.cache = cache

    def compute_status_counts(self, db: Session, event_id: Optional[int] = None) -> Dict[str, int]:
        """Group attendance records by verification status"""
        query = db.query(
            AttendanceRecord.verification_status,
            func.count(AttendanceRecord.id)
        )
        if event_id is not None:
            query = query.filter(AttendanceRecord.event_id == event_id)

        counts = {"total": 0, "pending": 0, "approved": 0, "rejected": 0}
        for status, count in query.group_by(AttendanceRecord.verification_status).all():
            counts["total"] += count
            if status == VerificationStatus.pending.value:
                counts["pending"] = count
            elif status == VerificationStatus.approved.value:
                counts["approved"] = count
            elif status == VerificationStatus.rejected.value:
                counts["rejected"] = count
        return counts

    def get_status_counts(self, db: Session, event_id: Optional[int] = None) -> Dict[str, int]:
        """Cached version of compute_status_counts, tagged for invalidation"""
        key = f"attendance-status-counts:{event_id if event_id is not None else 'all'}"
        return self.cache.get_or_set(
            key,
            lambda: self.compute_status_counts(db, event_id),
            ttl=STATUS_COUNTS_TTL_SEC,
            tags=(CacheTag.attendance,)
        )


# Singleton instance
stats_service = StatsService()
