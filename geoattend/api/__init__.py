"""
API routers package
"""
from geoattend.api import attendance, system

__all__ = [
    "attendance",
    "system"
]
