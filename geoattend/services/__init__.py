"""
Services package - Attendance business logic
"""
from geoattend.services.attendance_service import attendance_service
from geoattend.services.audit_service import audit_service
from geoattend.services.cache_service import cache_service
from geoattend.services.event_status_service import event_status_service
from geoattend.services.export_service import export_service
from geoattend.services.media_service import media_service
from geoattend.services.profile_service import profile_service
from geoattend.services.stats_service import stats_service
from geoattend.services.verification_service import verification_service

__all__ = [
    "attendance_service",
    "audit_service",
    "cache_service",
    "event_status_service",
    "export_service",
    "media_service",
    "profile_service",
    "stats_service",
    "verification_service"
]
