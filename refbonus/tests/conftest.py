"""Pytest hooks and fixtures for refbonus tests.

Ensures DJANGO_SETTINGS_MODULE is set when running tests from the repo root
without pyproject.toml in effect (e.g. when invoked from another cwd).
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "refbonus.tests.test_settings")

import httpx  # noqa: E402
import pytest  # noqa: E402


@pytest.fixture
def api_client():
    """API client authenticated with the service token."""
    from django.conf import settings
    from ninja.testing import TestAsyncClient
    from refbonus.api import router

    return TestAsyncClient(router, headers={"Authorization": f"Bearer {settings.REFBONUS_API_TOKEN}"})


@pytest.fixture
def user_client():
    """Factory for API clients authenticated as an end user."""
    from ninja.testing import TestAsyncClient
    from refbonus.api import router

    from .utils import make_id_token

    def make(uid: str):
        return TestAsyncClient(router, headers={"Authorization": f"Bearer {make_id_token(uid)}"})

    return make


@pytest.fixture
def entitlement_requests():
    """
    Routes entitlement service calls to an in-memory transport.

    Yields the list of captured requests; set ``entitlement_requests.status``
    on the returned list to change the response status.
    """
    from refbonus.services.entitlement_service import EntitlementClient, set_entitlement_client

    class Captured(list):
        status = 200

    captured = Captured()

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(captured.status, json={"ok": captured.status < 400})

    set_entitlement_client(EntitlementClient.from_settings(transport=httpx.MockTransport(handler)))
    yield captured
    set_entitlement_client(None)
