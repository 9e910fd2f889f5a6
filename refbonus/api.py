"""REST API endpoints for the refbonus referral engine.

Implemented with Django Ninja. Referral intake authenticates the end user with
an ID token (UserTokenAuth); read endpoints and change-event delivery require
the service Bearer token (REFBONUS_API_TOKEN). Every write answers with the
``{"status": ..., "message": ...}`` envelope. Docstrings are used to generate
OpenAPI descriptions.
"""

from __future__ import annotations

import json
import logging

from asgiref.sync import sync_to_async
from ninja import Router
from pydantic import ValidationError

from .auth import APIKeyAuth, UserTokenAuth
from .exceptions import AlreadyExists, InvalidPayload, PersistenceError
from .schemas import (
    BonusHistorySchema,
    ReferralIntakeSchema,
    ReferralRecordSchema,
    StatusResponse,
)
from .services import AccrualService, EntitlementService, ReferralChange, ReferralService

logger = logging.getLogger(__name__)

router = Router(tags=["referrals"])


# --- Referral Intake ---

@router.post(
    "/referrals",
    auth=UserTokenAuth(),
    response={200: StatusResponse, 400: StatusResponse, 409: StatusResponse, 500: StatusResponse},
    exclude_none=True,
)
async def acreate_referral(request):
    """Declare the caller's referrer and bonus terms (one record per user).

    Request body: referred_by_uid, bonus_condition (1-2), bonus_direction (1-3),
    bonus_type (1-7, optional), is_integrated_purchase_service.
    Returns 400 for a malformed body or codes outside the taxonomy, 409 if the
    caller already has a referral record (never overwritten).
    """
    uid = request.auth

    try:
        payload = ReferralIntakeSchema.model_validate_json(request.body or b"")
    except ValidationError as e:
        logger.info(f"Invalid referral payload from uid={uid}: {e.error_count()} error(s)")
        return 400, StatusResponse.error(InvalidPayload.default_detail)

    try:
        await ReferralService.acreate_record(uid, payload)
    except InvalidPayload as e:
        return 400, StatusResponse.error(e.detail)
    except AlreadyExists as e:
        return 409, StatusResponse.error(e.detail)
    except PersistenceError as e:
        return 500, StatusResponse.error(e.detail)

    return 200, StatusResponse.ok()


@router.get("/referrals/stats", auth=APIKeyAuth(), response={200: StatusResponse})
async def areferral_stats(request, uid: str):
    """Number of users who declared ``uid`` as their referrer."""
    count = await ReferralService.acount_referred(uid)
    return StatusResponse.ok(uid=uid, count=count)


@router.get("/referrals/{uid}", auth=APIKeyAuth(), response={200: ReferralRecordSchema, 404: StatusResponse})
async def aget_referral(request, uid: str):
    """Get the referral record of a user.

    Returns 404 if the user never declared a referral.
    """
    record = await ReferralService.aget_record(uid)
    if record is None:
        return 404, StatusResponse.error("Referral Record Not Found")
    return record


# --- Bonus History ---

@router.get("/bonus-history/{uid}", auth=APIKeyAuth(), response=BonusHistorySchema)
async def aget_bonus_history(request, uid: str):
    """Get the bonus ledger of a user, oldest accrual first.

    A user without any accrual is returned with expired_at=0 and no bonuses.
    """
    return await AccrualService.aget_history(uid)


# --- Change Events ---

@router.post("/events/referral-records", auth=APIKeyAuth(), response={200: StatusResponse, 400: StatusResponse})
async def areferral_record_event(request):
    """Apply an externally delivered referral record change event.

    Body: ``{"oldValue": {...}, "value": {"name": ..., "fields": {...}}}`` with
    typed field wrappers (integerValue, stringValue, booleanValue).
    Accrual failures are reported in ``data.failed``; the event is still
    acknowledged so the producer does not redeliver it forever.
    """
    try:
        body = json.loads(request.body or b"")
        change = ReferralChange.from_event(body)
    except (ValueError, InvalidPayload) as e:
        detail = e.detail if isinstance(e, InvalidPayload) else InvalidPayload.default_detail
        logger.info(f"Rejected referral change event: {detail}")
        return 400, StatusResponse.error(detail)

    result = await AccrualService.ahandle_change(change)
    return 200, StatusResponse.ok(credited=result.credited, failed=result.failed)


# --- Entitlement Sync ---

@router.post("/entitlements/retry", auth=APIKeyAuth(), response={200: StatusResponse})
async def aretry_entitlements(request, limit: int = 100):
    """Redeliver entitlement grants that are still pending or failed.

    Query params: limit (default 100, 0 = no limit).
    """
    stats = await sync_to_async(EntitlementService.retry_pending, thread_sensitive=True)(limit=limit)
    return StatusResponse.ok(**stats)
