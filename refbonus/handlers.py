"""Model signal receivers that turn ReferralRecord writes into accruals.

The prior row is snapshotted on ``pre_save``; on ``post_save`` the change is
handed to AccrualService once the surrounding transaction commits, so the
record write never depends on the accrual outcome.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .conf import refbonus_settings
from .models import ReferralRecord
from .services.accrual_service import RECORD_FIELDS, AccrualService, ReferralChange

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=ReferralRecord, dispatch_uid="refbonus_referral_snapshot")
def snapshot_referral_record(sender, instance: ReferralRecord, **kwargs) -> None:
    """Stores the persisted state of the record on the instance before it is overwritten."""
    instance._refbonus_before = None
    if instance.pk is None:
        return
    before = ReferralRecord.objects.filter(pk=instance.pk).values(*RECORD_FIELDS).first()
    instance._refbonus_before = before


@receiver(post_save, sender=ReferralRecord, dispatch_uid="refbonus_referral_accrual")
def accrue_on_referral_saved(sender, instance: ReferralRecord, created: bool, raw: bool = False, **kwargs) -> None:
    """Schedules bonus accrual for a created or updated referral record."""
    if raw or not refbonus_settings.ACCRUE_ON_SAVE:
        return

    change = ReferralChange.from_instance(instance, before=getattr(instance, "_refbonus_before", None))
    logger.info(f"Referral record {'created' if created else 'updated'}: {change.resource}")

    def run() -> None:
        try:
            result = AccrualService.handle_change(change)
        except Exception:
            logger.exception(f"Bonus accrual crashed for {change.resource}")
            return
        if result.failed:
            logger.warning(f"Bonus accrual incomplete for {change.resource}: {result.failed}")

    transaction.on_commit(run)
