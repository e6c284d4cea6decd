"""
Audit Service - append-only trail of attendance state transitions

Entries are written after the primary transition has committed, in their
own transaction. A failed write does not undo the transition; it is logged
at CRITICAL with the full payload and returned to the caller as an
AuditWriteFailure so it can be surfaced.
"""
import logging
from typing import Any, Dict, NamedTuple, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from geoattend.db.models import AuditLog
from geoattend.enums import AuditEventType
from geoattend.services.results import AttendanceError, ErrorKind

logger = logging.getLogger(__name__)


class RequestContext(NamedTuple):
    """Requester network details captured at the HTTP edge"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditService:
    """Writes AuditLog rows"""

    def _write(self, db: Session, entry: AuditLog) -> None:
        db.add(entry)
        db.commit()

    def record(
        self,
        db: Session,
        actor_id: Optional[int],
        event_type: AuditEventType,
        metadata: Dict[str, Any],
        context: Optional[RequestContext] = None,
        success: bool = True
    ) -> Optional[AttendanceError]:
        """
        Append one audit entry.

        Returns None on success, or an AuditWriteFailure error describing the
        lost entry.
        """
        context = context or RequestContext()
        entry = AuditLog(
            user_id=actor_id,
            event_type=event_type.value,
            success=success,
            metadata_=metadata,
            ip_address=context.ip_address,
            user_agent=context.user_agent
        )
        try:
            self._write(db, entry)
            return None
        except SQLAlchemyError as e:
            db.rollback()
            logger.critical(
                f"AUDIT WRITE FAILURE type={event_type.value} actor={actor_id} "
                f"metadata={metadata}: {e}"
            )
            return AttendanceError(
                kind=ErrorKind.audit_write_failure,
                message="State change committed but its audit entry could not be written",
                details={"event_type": event_type.value, "metadata": metadata}
            )


# Singleton instance
audit_service = AuditService()
