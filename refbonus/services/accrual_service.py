"""Service for bonus accrual.

Reacts to a change of a ReferralRecord: decides which user(s) are credited
according to the bonus direction, appends a BonusItem to each credited
user's BonusHistory and queues the entitlement notification for users
provisioned through the integrated purchase service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from asgiref.sync import sync_to_async
from django.db import DatabaseError, OperationalError, transaction
from pydantic import ValidationError

from ..conf import refbonus_settings
from ..exceptions import InvalidPayload, PersistenceError
from ..models import (
    BonusDirection,
    BonusHistory,
    BonusItem,
    EntitlementGrant,
    ReferralRecord,
    bonus_seconds,
    duration_name,
    epoch_now,
)
from ..schemas import BonusHistorySchema, ReferralChangeEventSchema
from ..signals import bonus_accrued
from .entitlement_service import EntitlementService

logger = logging.getLogger(__name__)

# Field names used by older event producers
_FIELD_ALIASES = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "referredByUid": "referred_by_uid",
}

RECORD_FIELDS = (
    "uid",
    "referred_by_uid",
    "bonus_condition",
    "bonus_direction",
    "bonus_type",
    "level",
    "is_integrated_purchase_service",
    "created_at",
    "updated_at",
)


@dataclass
class ReferralChange:
    """Prior and new state of a referral record, as plain dicts."""

    after: dict[str, Any]
    before: dict[str, Any] | None = None
    resource: str = ""

    @classmethod
    def from_instance(cls, instance: ReferralRecord, before: dict[str, Any] | None = None) -> ReferralChange:
        after = {name: getattr(instance, name) for name in RECORD_FIELDS}
        return cls(after=after, before=before, resource=f"referral_records/{instance.uid}")

    @classmethod
    def from_event(cls, payload: dict[str, Any]) -> ReferralChange:
        """
        Decodes an externally delivered change event.

        Raises:
            InvalidPayload: If the event does not carry a new document state.
        """
        try:
            event = ReferralChangeEventSchema.model_validate(payload)
        except ValidationError as e:
            raise InvalidPayload(f"Invalid Change Event: {e.error_count()} error(s)")

        def normalize(values: dict[str, Any]) -> dict[str, Any]:
            return {_FIELD_ALIASES.get(key, key): value for key, value in values.items()}

        before = normalize(event.old_value.to_dict()) if event.old_value and event.old_value.fields else None
        return cls(after=normalize(event.value.to_dict()), before=before, resource=event.value.name)


@dataclass
class AccrualResult:
    """Outcome of one change event: credited items and per-uid failures."""

    items: list[BonusItem] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def credited(self) -> list[str]:
        return [item.history.uid for item in self.items]


class AccrualService:
    """
    Applies referral bonuses to users' bonus histories.
    """

    @classmethod
    def targets_for(cls, direction_code, uid: str, referred_by_uid: str) -> list[str]:
        """
        Returns the uids credited for a direction code.

        Unknown codes fall back to crediting both users.
        """
        direction = BonusDirection.resolve(direction_code)
        if direction == BonusDirection.UID:
            return [uid]
        if direction == BonusDirection.REFERRED_BY_UID:
            return [referred_by_uid]
        return [uid, referred_by_uid]

    @classmethod
    def handle_change(cls, change: ReferralChange) -> AccrualResult:
        """
        Credits the users designated by a referral record change.

        Failures are logged per credited user and never raised: the trigger has
        no caller to answer and may redeliver the event.

        Args:
            change: Prior and new state of the referral record.

        Returns:
            AccrualResult: Items written and failures keyed by uid.
        """
        state = change.after
        result = AccrualResult()

        uid = str(state.get("uid") or "").strip()
        referred_by_uid = str(state.get("referred_by_uid") or "").strip()
        bonus_type = state.get("bonus_type")
        integrated = bool(state.get("is_integrated_purchase_service"))
        event_timestamp = state.get("created_at") or epoch_now()

        logger.info(
            f"Referral change on {change.resource or uid}: uid={uid} referred_by={referred_by_uid or '-'} "
            f"direction={state.get('bonus_direction')} type={bonus_type} "
            f"condition={state.get('bonus_condition')} level={state.get('level')}"
        )

        try:
            bonus_seconds(bonus_type)
        except InvalidPayload as e:
            logger.error(f"Skipping accrual for uid={uid or '-'}: {e.detail}")
            result.failed[uid] = e.detail
            return result

        for target in cls.targets_for(state.get("bonus_direction"), uid, referred_by_uid):
            if not target:
                logger.warning(f"Skipping accrual with empty target uid (record uid={uid or '-'})")
                continue
            try:
                item = cls.credit_user(target, bonus_type, event_timestamp, integrated)
            except PersistenceError as e:
                logger.error(f"Bonus accrual failed for uid={target}: {e.detail}")
                result.failed[target] = e.detail
                continue
            result.items.append(item)

        return result

    @classmethod
    async def ahandle_change(cls, change: ReferralChange) -> AccrualResult:
        """Asynchronous version of handle_change."""
        return await sync_to_async(cls.handle_change, thread_sensitive=True)(change)

    @classmethod
    def credit_user(cls, uid: str, bonus_type, event_timestamp: int, integrated: bool = False) -> BonusItem:
        """
        Appends one bonus to the history of ``uid``.

        Transient database errors are retried up to REFBONUS_ACCRUAL_RETRIES times.

        Args:
            uid: User to credit.
            bonus_type: Bonus duration class code.
            event_timestamp: Timestamp of the triggering referral event.
            integrated: Queue a notification to the entitlement service.

        Returns:
            BonusItem: The appended item.

        Raises:
            InvalidPayload: Unknown bonus type.
            PersistenceError: The write failed after all retries.
        """
        seconds = bonus_seconds(bonus_type)
        retries = int(refbonus_settings.ACCRUAL_RETRIES)
        last_error: Exception | None = None

        for attempt in range(1, retries + 1):
            try:
                return cls._append_bonus(uid, int(bonus_type), seconds, int(event_timestamp), integrated)
            except OperationalError as e:
                last_error = e
                logger.warning(f"Transient error crediting uid={uid} (attempt {attempt}/{retries}): {e}")
            except DatabaseError as e:
                logger.exception(f"Failed to credit uid={uid}")
                raise PersistenceError(str(e))

        raise PersistenceError(str(last_error))

    @classmethod
    def _append_bonus(cls, uid: str, bonus_type: int, seconds: int, event_timestamp: int, integrated: bool) -> BonusItem:
        with transaction.atomic():
            now = epoch_now()
            history, created = BonusHistory.objects.select_for_update().get_or_create(
                uid=uid,
                defaults={"created_at": now, "updated_at": now},
            )

            item = BonusItem.objects.create(
                history=history,
                position=history.bonuses.count(),
                referraled_at=event_timestamp,
                started_at=now,
                bonus_type=bonus_type,
                expire_time=seconds,
            )

            if created:
                history.expired_at = seconds
            else:
                history.expired_at = history.expired_at + seconds
            history.updated_at = now
            history.save(update_fields=["expired_at", "updated_at"])

            if integrated:
                grant = EntitlementGrant.objects.create(
                    uid=uid,
                    bonus_item=item,
                    bonus_type=bonus_type,
                    duration=duration_name(bonus_type),
                )
                transaction.on_commit(partial(EntitlementService.deliver_by_id, grant.pk), robust=True)

            transaction.on_commit(partial(bonus_accrued.send, sender=cls, item=item, history=history), robust=True)

        logger.info(
            f"Bonus accrued: uid={uid} type={bonus_type} +{seconds}s "
            f"total={history.expired_at}s position={item.position}"
        )
        return item

    @classmethod
    async def acredit_user(cls, uid: str, bonus_type, event_timestamp: int, integrated: bool = False) -> BonusItem:
        """Asynchronous version of credit_user."""
        return await sync_to_async(cls.credit_user, thread_sensitive=True)(
            uid, bonus_type, event_timestamp, integrated
        )

    @classmethod
    def get_history(cls, uid: str) -> dict[str, Any]:
        """
        Returns the bonus history of ``uid`` with items in insertion order.

        A user without history gets the zero value instead of an error.
        """
        history = BonusHistory.objects.filter(uid=uid).prefetch_related("bonuses").first()
        if history is None:
            return BonusHistorySchema(uid=uid).model_dump()
        return BonusHistorySchema.model_validate(history).model_dump()

    @classmethod
    async def aget_history(cls, uid: str) -> dict[str, Any]:
        """Asynchronous version of get_history."""
        return await sync_to_async(cls.get_history, thread_sensitive=True)(uid)
