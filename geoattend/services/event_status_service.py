"""
Event Status Service - completes Active events whose check-out window closed

Runs from the Celery beat schedule; the submission path only reads
Event.status.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from geoattend.clock import utcnow
from geoattend.db.models import Event
from geoattend.enums import AuditEventType, EventStatus
from geoattend.services.audit_service import AuditService, audit_service
from geoattend.services.cache_service import EVENT_TAGS, CacheInvalidator, cache_service
from geoattend.services.window_service import validate_window_config

logger = logging.getLogger(__name__)


class EventStatusService:
    """Lifecycle housekeeping for events"""

    def __init__(
        self,
        audit: AuditService = audit_service,
        cache_invalidator: CacheInvalidator = cache_service
    ):
        self.audit = audit
        self.cache_invalidator = cache_invalidator

    def complete_expired_events(self, db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Mark Active events whose end time has passed as Completed"""
        now = now or utcnow()

        expired = db.query(Event).filter(
            Event.status == EventStatus.active.value,
            Event.end_time < now
        ).all()

        if not expired:
            return {"success": True, "transitioned": 0}

        for event in expired:
            problems = validate_window_config(
                event.start_time, event.end_time,
                event.check_in_buffer_mins, event.check_out_buffer_mins
            )
            if problems:
                logger.warning(f"Event {event.id} had an invalid window configuration: {problems}")
            event.status = EventStatus.completed.value

        event_ids = [event.id for event in expired]
        db.commit()

        for event_id in event_ids:
            self.audit.record(
                db,
                actor_id=None,
                event_type=AuditEventType.event_completed,
                metadata={
                    "event_id": event_id,
                    "previous_status": EventStatus.active.value,
                    "new_status": EventStatus.completed.value,
                    "reason": "check-out window closed"
                }
            )

        self.cache_invalidator.invalidate(*EVENT_TAGS)
        logger.info(f"Completed {len(event_ids)} expired events: {event_ids}")

        return {"success": True, "transitioned": len(event_ids), "event_ids": event_ids}


# Singleton instance
event_status_service = EventStatusService()
