from .referral_service import ReferralService
from .accrual_service import AccrualService, AccrualResult, ReferralChange
from .entitlement_service import EntitlementClient, EntitlementService, get_entitlement_client

__all__ = [
    "ReferralService",
    "AccrualService",
    "AccrualResult",
    "ReferralChange",
    "EntitlementClient",
    "EntitlementService",
    "get_entitlement_client",
]
