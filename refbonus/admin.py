"""Django admin registrations for refbonus models.

Provides admin interfaces for ReferralRecord, BonusHistory (with its
read-only BonusItem ledger) and EntitlementGrant.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from .models import BonusHistory, BonusItem, BonusType, EntitlementGrant, ReferralRecord
from .services import EntitlementService


def _format_epoch(value: int) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value, tz=dt_timezone.utc).strftime("%d.%m.%Y %H:%M:%S")


@admin.register(ReferralRecord)
class ReferralRecordAdmin(admin.ModelAdmin):
    """Admin configuration for ReferralRecord."""

    list_display = (
        "uid",
        "referred_by_uid",
        "bonus_type",
        "bonus_direction",
        "bonus_condition",
        "is_integrated_purchase_service",
        "created_display",
    )
    list_filter = ("bonus_type", "bonus_direction", "bonus_condition", "is_integrated_purchase_service")
    search_fields = ("uid", "referred_by_uid")
    readonly_fields = ("created_at", "updated_at")

    def created_display(self, obj):
        return _format_epoch(obj.created_at)
    created_display.short_description = _("Created")


class BonusItemInline(admin.TabularInline):
    """Ledger entries; append-only, so nothing is editable here."""

    model = BonusItem
    extra = 0
    can_delete = False
    fields = ("position", "bonus_type", "expire_time", "referraled_at", "started_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(BonusHistory)
class BonusHistoryAdmin(admin.ModelAdmin):
    """Admin configuration for BonusHistory."""

    list_display = ("uid", "bonus_days", "bonus_count", "created_display", "updated_display")
    search_fields = ("uid",)
    readonly_fields = ("uid", "created_at", "updated_at", "expired_at")
    inlines = (BonusItemInline,)

    def bonus_days(self, obj):
        """Cumulative bonus in days."""
        return round(obj.expired_at / BonusType.DAILY.seconds, 2)
    bonus_days.short_description = _("Bonus (days)")

    def bonus_count(self, obj):
        return obj.bonuses.count()
    bonus_count.short_description = _("Accruals")

    def created_display(self, obj):
        return _format_epoch(obj.created_at)
    created_display.short_description = _("Created")

    def updated_display(self, obj):
        return _format_epoch(obj.updated_at)
    updated_display.short_description = _("Updated")


@admin.register(EntitlementGrant)
class EntitlementGrantAdmin(admin.ModelAdmin):
    """Admin configuration for EntitlementGrant."""

    list_display = ("id", "uid", "duration", "status", "attempts", "response_status", "created_at", "sent_at")
    list_filter = ("status", "duration", "created_at")
    search_fields = ("uid", "id")
    readonly_fields = ("id", "created_at", "sent_at", "attempts", "last_error", "response_status")
    raw_id_fields = ("bonus_item",)
    date_hierarchy = "created_at"
    actions = ("retry_delivery",)

    @admin.action(description=_("Retry delivery to the entitlement service"))
    def retry_delivery(self, request, queryset):
        sent = 0
        failed = 0
        for grant in queryset.exclude(status=EntitlementGrant.Status.SENT):
            if EntitlementService.deliver(grant):
                sent += 1
            else:
                failed += 1
        level = messages.SUCCESS if not failed else messages.WARNING
        self.message_user(request, f"Delivered: {sent}, failed: {failed}.", level=level)
