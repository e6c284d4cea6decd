"""
Profile Service - participant profile completeness
"""
from sqlalchemy.orm import Session

from geoattend.db.models import UserProfile


class ProfileService:
    """Read-only view over participant profiles"""

    def has_complete_profile(self, db: Session, user_id: int) -> bool:
        """A profile is complete once it carries a student ID and a department"""
        profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
        if not profile:
            return False
        return bool(profile.student_id and profile.department)


# Singleton instance
profile_service = ProfileService()
