"""Authentication for the refbonus API.

Two schemes are used:

* ``APIKeyAuth``: service-to-service Bearer token compared against
  REFBONUS_API_TOKEN (read endpoints, change-event delivery).
* ``UserTokenAuth``: end-user Bearer ID token resolved to a uid by the
  configured verifier (REFBONUS_TOKEN_VERIFIER). The default verifier accepts
  HS256 JWTs signed with REFBONUS_AUTH_JWT_SECRET.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable

from django.utils.module_loading import import_string
from jose import JWTError, jwt
from ninja.security import HttpBearer

from .conf import refbonus_settings

logger = logging.getLogger(__name__)


def verify_id_token(token: str) -> str | None:
    """Decode an end-user ID token and return its uid.

    Args:
        token: Raw JWT from the Authorization header.

    Returns:
        The ``uid`` claim (or ``sub`` when ``uid`` is absent); None if the token
        is invalid, expired, or carries no identifier.
    """
    secret = refbonus_settings.AUTH_JWT_SECRET
    if not secret:
        logger.warning("REFBONUS_AUTH_JWT_SECRET is not set; rejecting ID token")
        return None

    audience = refbonus_settings.AUTH_JWT_AUDIENCE
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={"verify_aud": bool(audience)},
        )
    except JWTError as e:
        logger.info(f"ID token rejected: {e}")
        return None

    uid = claims.get("uid") or claims.get("sub")
    if not uid or not str(uid).strip():
        return None
    return str(uid).strip()


@lru_cache(maxsize=None)
def _load_verifier(path: str) -> Callable[[str], str | None]:
    return import_string(path)


def get_token_verifier() -> Callable[[str], str | None]:
    """Returns the configured ``token -> uid | None`` callable."""
    return _load_verifier(refbonus_settings.TOKEN_VERIFIER)


class APIKeyAuth(HttpBearer):
    """Bearer token authentication for service endpoints.

    Validates the Authorization: Bearer <token> header against REFBONUS_API_TOKEN.
    """

    def authenticate(self, request, token):
        api_token = refbonus_settings.API_TOKEN
        if api_token and token == api_token:
            return token
        return None


class UserTokenAuth(HttpBearer):
    """Bearer ID-token authentication for end-user endpoints.

    On success the resolved uid is returned and exposed as ``request.auth``.
    """

    def authenticate(self, request, token):
        uid = get_token_verifier()(token)
        if not uid:
            return None
        return uid
