"""Models for referral bonus bookkeeping.

A user declares once who referred them and under which bonus terms
(ReferralRecord). Each accrual appends an immutable BonusItem to the user's
BonusHistory ledger, and owed notifications to the external entitlement
service are queued in EntitlementGrant.
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from .exceptions import ImmutableBonusItem, InvalidPayload


def epoch_now() -> int:
    """Current time as integer epoch seconds."""
    return int(timezone.now().timestamp())


class BonusType(models.IntegerChoices):
    """
    Closed taxonomy of bonus duration classes.

    The numeric value is the wire code; ``seconds`` is the granted duration and
    ``duration_name`` the class name understood by the entitlement service.
    """

    DAILY = 1, "Daily"
    THREE_DAY = 2, "Three days"
    WEEKLY = 3, "Weekly"
    MONTHLY = 4, "Monthly"
    SIX_MONTH = 5, "Six months"
    YEARLY = 6, "Yearly"
    LIFETIME = 7, "Lifetime"

    @property
    def seconds(self) -> int:
        return BONUS_TYPE_SECONDS[self.value]

    @property
    def duration_name(self) -> str:
        return self.name.lower()


BONUS_TYPE_SECONDS: dict[int, int] = {
    1: 86400,
    2: 86400 * 3,
    3: 86400 * 7,
    4: 86400 * 30,
    5: 86400 * 30 * 6,
    6: 86400 * 365,
    7: 86400 * 365 * 10,
}


class BonusDirection(models.IntegerChoices):
    """Which side of the referral receives the bonus."""

    UID = 1, "Referee only (uid)"
    REFERRED_BY_UID = 2, "Referrer only (referred_by_uid)"
    BIDIRECTIONAL = 3, "Both"

    @classmethod
    def resolve(cls, code) -> BonusDirection:
        """
        Returns the direction for a code, falling back to BIDIRECTIONAL.

        Unknown, empty or non-numeric codes all credit both users.
        """
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.BIDIRECTIONAL


class BonusCondition(models.IntegerChoices):
    """When the bonus becomes due. Only IMMEDIATELY is acted on today."""

    IMMEDIATELY = 1, "Immediately"
    ON_TIME = 2, "On time"


def bonus_seconds(code) -> int:
    """
    Duration in seconds for a bonus type code.

    Raises:
        InvalidPayload: If the code is not part of the taxonomy.
    """
    try:
        return BonusType(int(code)).seconds
    except (TypeError, ValueError):
        raise InvalidPayload(f"Unknown bonus type {code!r}")


def duration_name(code) -> str:
    """
    Duration class name (e.g. ``three_day``) for a bonus type code.

    Raises:
        InvalidPayload: If the code is not part of the taxonomy.
    """
    try:
        return BonusType(int(code)).duration_name
    except (TypeError, ValueError):
        raise InvalidPayload(f"Unknown bonus type {code!r}")


class ReferralRecord(models.Model):
    """
    One-time declaration of who referred a user and under what bonus terms.

    At most one record exists per uid; records are never overwritten.
    """

    uid = models.CharField(
        max_length=128,
        unique=True,
        verbose_name="UID",
        help_text="Identifier of the user who owns this record",
    )
    referred_by_uid = models.CharField(
        max_length=128,
        blank=True,
        default="",
        db_index=True,
        verbose_name="Referred By",
        help_text="Identifier of the referring user; empty for organic users",
    )
    bonus_condition = models.PositiveSmallIntegerField(
        choices=BonusCondition.choices,
        default=BonusCondition.IMMEDIATELY,
        verbose_name="Bonus Condition",
    )
    bonus_direction = models.PositiveSmallIntegerField(
        choices=BonusDirection.choices,
        default=BonusDirection.BIDIRECTIONAL,
        verbose_name="Bonus Direction",
    )
    bonus_type = models.PositiveSmallIntegerField(
        choices=BonusType.choices,
        verbose_name="Bonus Type",
    )
    level = models.BigIntegerField(
        default=0,
        verbose_name="Level",
        help_text="Reserved",
    )
    is_integrated_purchase_service = models.BooleanField(
        default=False,
        verbose_name="Integrated Purchase Service",
        help_text="If True, accruals are also pushed to the external entitlement service",
    )
    created_at = models.BigIntegerField(default=epoch_now, verbose_name="Created At (epoch)")
    updated_at = models.BigIntegerField(default=epoch_now, verbose_name="Updated At (epoch)")

    class Meta:
        db_table = "refbonus_referral_records"
        verbose_name = "Referral Record"
        verbose_name_plural = "Referral Records"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        referrer = self.referred_by_uid or "organic"
        return f"{self.uid} ← {referrer} ({BonusType(self.bonus_type).duration_name})"


class BonusHistory(models.Model):
    """
    Append-only ledger of accrued bonuses for one user.

    ``expired_at`` is the cumulative number of seconds granted so far; each
    accrual extends it from the previous cumulative point.
    """

    uid = models.CharField(max_length=128, unique=True, verbose_name="UID")
    created_at = models.BigIntegerField(default=0, verbose_name="Created At (epoch)")
    updated_at = models.BigIntegerField(default=0, verbose_name="Updated At (epoch)")
    expired_at = models.BigIntegerField(
        default=0,
        verbose_name="Cumulative Bonus Seconds",
        help_text="Sum of all granted durations",
    )

    class Meta:
        db_table = "refbonus_bonus_history"
        verbose_name = "Bonus History"
        verbose_name_plural = "Bonus Histories"
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return f"{self.uid}: {self.expired_at}s"


class BonusItem(models.Model):
    """
    Immutable record of one accrual event.
    """

    history = models.ForeignKey(
        BonusHistory,
        on_delete=models.CASCADE,
        related_name="bonuses",
        verbose_name="Bonus History",
    )
    position = models.PositiveIntegerField(verbose_name="Position")
    referraled_at = models.BigIntegerField(
        verbose_name="Referral Event At (epoch)",
        help_text="Timestamp of the referral event that triggered this bonus",
    )
    started_at = models.BigIntegerField(
        verbose_name="Processed At (epoch)",
    )
    bonus_type = models.PositiveSmallIntegerField(
        choices=BonusType.choices,
        verbose_name="Bonus Type",
    )
    expire_time = models.BigIntegerField(
        verbose_name="Granted Seconds",
    )

    class Meta:
        db_table = "refbonus_bonus_items"
        verbose_name = "Bonus Item"
        verbose_name_plural = "Bonus Items"
        ordering = ["history", "position"]
        constraints = [
            models.UniqueConstraint(fields=["history", "position"], name="refbonus_item_history_position_uniq"),
        ]

    def __str__(self) -> str:
        return f"#{self.position} {BonusType(self.bonus_type).duration_name} (+{self.expire_time}s)"

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ImmutableBonusItem()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableBonusItem()


class EntitlementGrant(models.Model):
    """
    Outbox row for a notification owed to the external entitlement service.

    Written in the same transaction as the ledger entry, delivered after
    commit, and redelivered by the ``sync_entitlements`` command on failure.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SENT = "SENT", "Sent"
        FAILED = "FAILED", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid7, editable=False)
    uid = models.CharField(max_length=128, db_index=True, verbose_name="UID")
    bonus_item = models.ForeignKey(
        BonusItem,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="entitlement_grants",
        verbose_name="Bonus Item",
    )
    bonus_type = models.PositiveSmallIntegerField(choices=BonusType.choices, verbose_name="Bonus Type")
    duration = models.CharField(max_length=32, verbose_name="Duration")
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        verbose_name="Status",
    )
    attempts = models.PositiveIntegerField(default=0, verbose_name="Attempts")
    last_error = models.TextField(blank=True, default="", verbose_name="Last Error")
    response_status = models.PositiveSmallIntegerField(null=True, blank=True, verbose_name="Response Status")
    created_at = models.DateTimeField(auto_now_add=True, verbose_name="Created At")
    sent_at = models.DateTimeField(null=True, blank=True, verbose_name="Sent At")

    class Meta:
        db_table = "refbonus_entitlement_grants"
        verbose_name = "Entitlement Grant"
        verbose_name_plural = "Entitlement Grants"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "attempts"], name="refbonus_eg_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.uid} {self.duration} [{self.status}]"
