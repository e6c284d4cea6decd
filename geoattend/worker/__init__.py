"""
Celery worker package
"""
from geoattend.worker.celery_app import celery_app

__all__ = ["celery_app"]
