"""
Celery Tasks for background attendance housekeeping
"""
import logging
from celery import shared_task
from geoattend.db.database import SessionLocal

logger = logging.getLogger(__name__)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def complete_expired_events(self):
    """
    Mark Active events whose check-out window has closed as Completed.

    Scheduled by Celery beat every EVENT_STATUS_INTERVAL_SEC seconds.
    """
    from geoattend.services.event_status_service import event_status_service

    db = get_db_session()
    try:
        result = event_status_service.complete_expired_events(db)
        if result["transitioned"]:
            logger.info(f"Expired event sweep: {result}")
        return result
    except Exception as e:
        db.rollback()
        logger.error(f"Expired event sweep failed: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()
