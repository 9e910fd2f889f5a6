"""Tests for settings defaults and startup validation."""

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from refbonus.conf import refbonus_settings


def test_defaults():
    assert refbonus_settings.ENTITLEMENT_TOKEN_TTL == 172800
    assert refbonus_settings.ACCRUAL_RETRIES == 3
    assert refbonus_settings.DEFAULT_BONUS_TYPE == 2
    assert refbonus_settings.TOKEN_VERIFIER == "refbonus.auth.verify_id_token"


def test_test_settings_are_valid():
    refbonus_settings.validate()


@override_settings(REFBONUS_ENTITLEMENT_SHARED_SECRET="")
def test_entitlement_url_requires_secret():
    with pytest.raises(ImproperlyConfigured, match="SHARED_SECRET"):
        refbonus_settings.validate()


@override_settings(REFBONUS_ENTITLEMENT_ID="")
def test_entitlement_url_requires_entitlement_id():
    with pytest.raises(ImproperlyConfigured, match="ENTITLEMENT_ID"):
        refbonus_settings.validate()


@override_settings(REFBONUS_ENTITLEMENT_URL="", REFBONUS_ENTITLEMENT_SHARED_SECRET="")
def test_disabled_integration_needs_no_secret():
    refbonus_settings.validate()
    assert refbonus_settings.entitlement_enabled is False


@pytest.mark.parametrize("value", [0, 8, "weekly"])
def test_default_bonus_type_must_be_known(value):
    with override_settings(REFBONUS_DEFAULT_BONUS_TYPE=value):
        with pytest.raises(ImproperlyConfigured, match="DEFAULT_BONUS_TYPE"):
            refbonus_settings.validate()


@override_settings(REFBONUS_ACCRUAL_RETRIES=0)
def test_retries_must_be_positive():
    with pytest.raises(ImproperlyConfigured):
        refbonus_settings.validate()


@override_settings(REFBONUS_HTTP_TIMEOUT=0)
def test_timeout_must_be_positive():
    with pytest.raises(ImproperlyConfigured):
        refbonus_settings.validate()
