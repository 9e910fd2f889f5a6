"""Service for syncing accrued bonuses to the external entitlement service.

Every notification owed to the service is stored as an EntitlementGrant
(outbox). Delivery is attempted right after the ledger write commits and can be
repeated later with the ``sync_entitlements`` management command. Delivery
failures are recorded on the grant and logged; they never undo the ledger.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from django.utils import timezone
from jose import jwt
from jose.exceptions import JOSEError

from ..conf import refbonus_settings
from ..exceptions import NotificationError
from ..models import EntitlementGrant
from ..signals import entitlement_synced

logger = logging.getLogger(__name__)


class EntitlementClient:
    """
    HTTP client for the entitlement endpoint.

    Built once per process from settings; pass ``transport`` to route requests
    through a custom httpx transport.
    """

    def __init__(
        self,
        url: str,
        entitlement_id: str,
        shared_secret: str,
        issuer: str = "",
        audience: str = "",
        kid: str = "",
        app_version: str = "",
        app_platform: str = "",
        token_ttl: int = 86400 * 2,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        self.entitlement_id = entitlement_id
        self.shared_secret = shared_secret
        self.issuer = issuer
        self.audience = audience
        self.kid = kid
        self.app_version = app_version
        self.app_platform = app_platform
        self.token_ttl = token_ttl
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, transport: httpx.BaseTransport | None = None) -> EntitlementClient:
        s = refbonus_settings
        return cls(
            url=s.ENTITLEMENT_URL,
            entitlement_id=s.ENTITLEMENT_ID,
            shared_secret=s.ENTITLEMENT_SHARED_SECRET,
            issuer=s.ENTITLEMENT_ISSUER,
            audience=s.ENTITLEMENT_AUDIENCE,
            kid=s.ENTITLEMENT_KID,
            app_version=s.APP_VERSION,
            app_platform=s.APP_PLATFORM,
            token_ttl=int(s.ENTITLEMENT_TOKEN_TTL),
            timeout=float(s.HTTP_TIMEOUT),
            transport=transport,
        )

    def generate_token(self) -> str:
        """
        Signs a short-lived HS256 credential for the entitlement service.

        Raises:
            NotificationError: If the token cannot be signed.
        """
        claims: dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.audience,
            "exp": int(time.time()) + self.token_ttl,
            "identity": {
                "app_version": self.app_version,
                "app_platform": self.app_platform,
            },
            "kid": self.kid,
        }
        try:
            return jwt.encode(claims, self.shared_secret, algorithm="HS256")
        except JOSEError as e:
            raise NotificationError(f"Token signing failed: {e}")

    def put_entitlement(self, uid: str, duration: str) -> httpx.Response:
        """
        Grants ``duration`` of the configured entitlement to ``uid``.

        Returns:
            httpx.Response: The successful response.

        Raises:
            NotificationError: On token, transport or non-2xx status errors.
        """
        token = self.generate_token()
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        }
        body = {
            "app_user_id": uid,
            "entitlement_id": self.entitlement_id,
            "duration": duration,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.put(self.url, headers=headers, json=body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationError(f"Request error: {e}")

        if not response.is_success:
            raise NotificationError(
                f"Invalid server response: {response.status_code}", status_code=response.status_code
            )

        logger.info(f"Entitlement granted: uid={uid} duration={duration} status={response.status_code}")
        return response


_client: EntitlementClient | None = None


def get_entitlement_client() -> EntitlementClient:
    """Returns the process-wide EntitlementClient, building it on first use."""
    global _client
    if _client is None:
        _client = EntitlementClient.from_settings()
    return _client


def set_entitlement_client(client: EntitlementClient | None) -> None:
    """Replaces the process-wide client (None resets to settings on next use)."""
    global _client
    _client = client


class EntitlementService:
    """Delivers queued EntitlementGrants."""

    @classmethod
    def deliver(cls, grant: EntitlementGrant, client: EntitlementClient | None = None) -> bool:
        """
        Sends one grant to the entitlement service and records the outcome.

        Never raises: failures are stored on the grant and logged.

        Returns:
            bool: True if the grant is now SENT.
        """
        if grant.status == EntitlementGrant.Status.SENT:
            return True

        if not refbonus_settings.entitlement_enabled and client is None:
            logger.warning(f"Entitlement integration disabled; grant {grant.pk} for uid={grant.uid} left pending")
            return False

        client = client or get_entitlement_client()
        grant.attempts += 1
        try:
            response = client.put_entitlement(grant.uid, grant.duration)
        except NotificationError as e:
            logger.error(
                f"Entitlement delivery failed for uid={grant.uid} "
                f"(grant {grant.pk}, attempt {grant.attempts}): {e.detail}"
            )
            cls._mark_failed(grant, e.detail, e.status_code)
            return False
        except Exception as e:
            logger.exception(
                f"Entitlement delivery crashed for uid={grant.uid} (grant {grant.pk}, attempt {grant.attempts})"
            )
            cls._mark_failed(grant, f"{type(e).__name__}: {e}")
            return False

        grant.status = EntitlementGrant.Status.SENT
        grant.last_error = ""
        grant.response_status = response.status_code
        grant.sent_at = timezone.now()
        grant.save(update_fields=["status", "attempts", "last_error", "response_status", "sent_at"])
        entitlement_synced.send(sender=cls, grant=grant)
        return True

    @classmethod
    def _mark_failed(cls, grant: EntitlementGrant, error: str, status_code: int | None = None) -> None:
        grant.status = EntitlementGrant.Status.FAILED
        grant.last_error = error
        grant.response_status = status_code
        grant.save(update_fields=["status", "attempts", "last_error", "response_status"])

    @classmethod
    def deliver_by_id(cls, grant_id) -> bool:
        """Loads a grant and delivers it. Used as an on_commit callback."""
        grant = EntitlementGrant.objects.filter(pk=grant_id).first()
        if grant is None:
            logger.warning(f"Entitlement grant {grant_id} vanished before delivery")
            return False
        return cls.deliver(grant)

    @classmethod
    def pending(cls, limit: int = 0):
        """
        Grants still owed to the entitlement service.

        Returns:
            QuerySet[EntitlementGrant]: PENDING/FAILED grants below the attempt cap, oldest first.
        """
        qs = EntitlementGrant.objects.filter(
            status__in=[EntitlementGrant.Status.PENDING, EntitlementGrant.Status.FAILED],
            attempts__lt=int(refbonus_settings.ENTITLEMENT_MAX_ATTEMPTS),
        ).order_by("created_at", "id")
        if limit > 0:
            qs = qs[:limit]
        return qs

    @classmethod
    def retry_pending(cls, limit: int = 0, client: EntitlementClient | None = None) -> dict[str, int]:
        """
        Redelivers owed grants.

        Returns:
            dict: Counts of ``sent`` and ``failed`` deliveries.
        """
        stats = {"sent": 0, "failed": 0}
        for grant in list(cls.pending(limit)):
            if cls.deliver(grant, client=client):
                stats["sent"] += 1
            else:
                stats["failed"] += 1
        logger.info(f"Entitlement retry finished: {stats}")
        return stats
