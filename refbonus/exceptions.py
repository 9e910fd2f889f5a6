"""Error taxonomy for the refbonus module.

Every error carries a short ``detail`` that the API layer renders into the
``{"status": "error", "message": "error=<detail>!"}`` envelope.
"""

from __future__ import annotations


class RefbonusError(Exception):
    """Base class for all refbonus errors."""

    default_detail = "Internal Error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidPayload(RefbonusError):
    """Malformed request body or a code outside the bonus taxonomy."""

    default_detail = "Invalid Request Payload"


class AlreadyExists(RefbonusError):
    """A referral record for this uid has already been written."""

    default_detail = "UID Exists"


class PersistenceError(RefbonusError):
    """The database was unavailable or rejected a write."""

    default_detail = "Internal Error"


class NotificationError(RefbonusError):
    """The external entitlement service call failed."""

    default_detail = "Entitlement Notification Failed"

    def __init__(self, detail: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(detail)


class ImmutableBonusItem(RefbonusError):
    """Raised on an attempt to modify or delete a recorded bonus item."""

    default_detail = "Bonus items are append-only"
