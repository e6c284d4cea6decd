"""
System Router - Health checks
"""
import logging
import redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from geoattend.clock import utcnow
from geoattend.config import settings
from geoattend.dependencies import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint returning status of the backing stores.
    Redis being down degrades caching only, so the service still reports
    "ok" as long as the database answers.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    redis_status = "unhealthy"
    worker_queue_depth = 0
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        r.ping()
        redis_status = "healthy"
        worker_queue_depth = r.llen("celery") or 0
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")

    return {
        "status": "ok" if database_status == "healthy" else "degraded",
        "database": database_status,
        "redis": redis_status,
        "worker_queue_depth": worker_queue_depth,
        "timestamp": utcnow().isoformat() + "Z"
    }
