"""Signals for the refbonus module.

Allow other applications to react to referral and bonus events
(record creation, accrual, entitlement delivery) without direct dependency.
"""

from __future__ import annotations

from django.dispatch import Signal

# Sent after a referral record is created through intake
# Arguments: record (ReferralRecord)
referral_recorded = Signal()

# Sent after a bonus item is committed to a user's history
# Arguments: item (BonusItem), history (BonusHistory)
bonus_accrued = Signal()

# Sent after an entitlement grant was delivered to the external service
# Arguments: grant (EntitlementGrant)
entitlement_synced = Signal()
