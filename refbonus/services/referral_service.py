"""Service for referral intake.

Validates a caller's referral declaration and persists exactly one
ReferralRecord per uid (first write wins, never an upsert).
"""

from __future__ import annotations

import logging

from asgiref.sync import sync_to_async
from django.db import DatabaseError, IntegrityError, transaction

from ..conf import refbonus_settings
from ..exceptions import AlreadyExists, InvalidPayload, PersistenceError
from ..models import BonusType, ReferralRecord, epoch_now
from ..schemas import ReferralIntakeSchema
from ..signals import referral_recorded

logger = logging.getLogger(__name__)


class ReferralService:
    """Service for creating and reading referral records."""

    @classmethod
    def create_record(cls, uid: str, payload: ReferralIntakeSchema) -> ReferralRecord:
        """
        Creates the referral record for ``uid``.

        The existence check gives a fast answer; the unique constraint on uid
        closes the race between concurrent intakes for the same user.

        Args:
            uid: Identity of the calling user.
            payload: Validated intake body.

        Returns:
            ReferralRecord: The newly created record.

        Raises:
            InvalidPayload: Empty uid or self-referral.
            AlreadyExists: A record for this uid is already stored.
            PersistenceError: The database rejected the write.
        """
        uid = (uid or "").strip()
        if not uid:
            raise InvalidPayload("Invalid UID")
        if payload.referred_by_uid and payload.referred_by_uid == uid:
            raise InvalidPayload("Referrer and referee cannot be same")

        bonus_type = payload.bonus_type
        if bonus_type is None:
            bonus_type = BonusType(refbonus_settings.DEFAULT_BONUS_TYPE).value

        try:
            with transaction.atomic():
                if ReferralRecord.objects.filter(uid=uid).exists():
                    logger.info(f"Referral record already exists for uid={uid}")
                    raise AlreadyExists()

                now = epoch_now()
                record = ReferralRecord.objects.create(
                    uid=uid,
                    referred_by_uid=payload.referred_by_uid,
                    bonus_condition=payload.bonus_condition,
                    bonus_direction=payload.bonus_direction,
                    bonus_type=bonus_type,
                    is_integrated_purchase_service=payload.is_integrated_purchase_service,
                    created_at=now,
                    updated_at=now,
                )
        except IntegrityError:
            logger.info(f"Concurrent referral intake lost for uid={uid}")
            raise AlreadyExists()
        except DatabaseError as e:
            logger.exception(f"Failed to store referral record for uid={uid}")
            raise PersistenceError(str(e))

        logger.info(
            f"Referral record created: uid={uid} referred_by={record.referred_by_uid or '-'} "
            f"type={record.bonus_type} direction={record.bonus_direction}"
        )
        referral_recorded.send(sender=cls, record=record)
        return record

    @classmethod
    async def acreate_record(cls, uid: str, payload: ReferralIntakeSchema) -> ReferralRecord:
        """Asynchronous version of create_record."""
        return await sync_to_async(cls.create_record, thread_sensitive=True)(uid=uid, payload=payload)

    @classmethod
    async def aget_record(cls, uid: str) -> ReferralRecord | None:
        """Returns the referral record of ``uid`` or None."""
        return await ReferralRecord.objects.filter(uid=uid).afirst()

    @classmethod
    async def acount_referred(cls, uid: str) -> int:
        """Number of users who declared ``uid`` as their referrer."""
        return await ReferralRecord.objects.filter(referred_by_uid=uid).acount()
