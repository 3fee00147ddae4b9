"""SQLModel сущности реферального движка."""

from .claim import ClaimStatus, ReferralClaim  # noqa: F401
from .earning import ReferralEarning  # noqa: F401
from .referral import ReferralAccount  # noqa: F401

__all__ = [
    "ClaimStatus",
    "ReferralAccount",
    "ReferralClaim",
    "ReferralEarning",
]
