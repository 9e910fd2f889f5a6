"""Helpers shared by refbonus tests."""

import time

from django.conf import settings
from jose import jwt


def make_id_token(uid: str, secret: str | None = None, expires_in: int = 3600) -> str:
    """Signs an end-user ID token the way the identity provider would."""
    claims = {"uid": uid, "exp": int(time.time()) + expires_in}
    return jwt.encode(claims, secret or settings.REFBONUS_AUTH_JWT_SECRET, algorithm="HS256")
