"""
Disposition Policy - distance from venue to verification status

Thresholds are fixed and shared by both phases:
    d <= 20 m         Approved (auto-verified)
    20 m < d <= 90 m  Pending (human review)
    d > 90 m          Rejected, but still recorded
Submissions beyond SUBMISSION_CEILING_M are refused by the caller before
this policy is consulted.
"""
from typing import NamedTuple

from geoattend.enums import VerificationStatus

AUTO_APPROVE_MAX_M = 20.0
PENDING_REVIEW_MAX_M = 90.0
SUBMISSION_CEILING_M = 100.0


class Disposition(NamedTuple):
    status: VerificationStatus
    reason: str

    @property
    def auto_verified(self) -> bool:
        return self.status == VerificationStatus.approved


def classify_distance(distance_m: float) -> Disposition:
    """Map a distance in meters to a disposition"""
    if distance_m <= AUTO_APPROVE_MAX_M:
        return Disposition(
            VerificationStatus.approved,
            f"Auto-approved: Within {AUTO_APPROVE_MAX_M:g}m of venue ({distance_m:.1f}m)"
        )
    if distance_m <= PENDING_REVIEW_MAX_M:
        return Disposition(
            VerificationStatus.pending,
            f"Pending review: {distance_m:.1f}m from venue "
            f"({AUTO_APPROVE_MAX_M:g}-{PENDING_REVIEW_MAX_M:g}m range)"
        )
    return Disposition(
        VerificationStatus.rejected,
        f"Auto-rejected: {distance_m:.1f}m from venue "
        f"(exceeds {PENDING_REVIEW_MAX_M:g}m threshold)"
    )


def exceeds_submission_ceiling(distance_m: float) -> bool:
    return distance_m > SUBMISSION_CEILING_M
