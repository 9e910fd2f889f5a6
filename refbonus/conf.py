"""Configuration layer for the refbonus module.

This module provides a settings wrapper that allows setting default values
if the user hasn't specified them in settings.py. All values are read from
Django settings with the REFBONUS_ prefix.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


class AppSettings:
    """
    Settings wrapper for accessing configuration.
    Allows setting default values if the user hasn't specified them in settings.py.
    """

    @property
    def API_TOKEN(self):
        return getattr(settings, "REFBONUS_API_TOKEN", None)

    @property
    def AUTH_JWT_SECRET(self):
        return getattr(settings, "REFBONUS_AUTH_JWT_SECRET", None)

    @property
    def AUTH_JWT_AUDIENCE(self):
        return getattr(settings, "REFBONUS_AUTH_JWT_AUDIENCE", None)

    @property
    def TOKEN_VERIFIER(self):
        return getattr(settings, "REFBONUS_TOKEN_VERIFIER", "refbonus.auth.verify_id_token")

    @property
    def DEFAULT_BONUS_TYPE(self):
        return getattr(settings, "REFBONUS_DEFAULT_BONUS_TYPE", 2)

    @property
    def ACCRUE_ON_SAVE(self):
        return getattr(settings, "REFBONUS_ACCRUE_ON_SAVE", True)

    @property
    def ACCRUAL_RETRIES(self):
        return getattr(settings, "REFBONUS_ACCRUAL_RETRIES", 3)

    @property
    def ENTITLEMENT_URL(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_URL", "")

    @property
    def ENTITLEMENT_ID(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_ID", "")

    @property
    def ENTITLEMENT_SHARED_SECRET(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_SHARED_SECRET", "")

    @property
    def ENTITLEMENT_ISSUER(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_ISSUER", "")

    @property
    def ENTITLEMENT_AUDIENCE(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_AUDIENCE", "")

    @property
    def ENTITLEMENT_KID(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_KID", "")

    @property
    def APP_VERSION(self):
        return getattr(settings, "REFBONUS_APP_VERSION", "")

    @property
    def APP_PLATFORM(self):
        return getattr(settings, "REFBONUS_APP_PLATFORM", "")

    @property
    def ENTITLEMENT_TOKEN_TTL(self):
        # Two days, in seconds
        return getattr(settings, "REFBONUS_ENTITLEMENT_TOKEN_TTL", 86400 * 2)

    @property
    def ENTITLEMENT_MAX_ATTEMPTS(self):
        return getattr(settings, "REFBONUS_ENTITLEMENT_MAX_ATTEMPTS", 5)

    @property
    def HTTP_TIMEOUT(self):
        return getattr(settings, "REFBONUS_HTTP_TIMEOUT", 10.0)

    @property
    def TABLE_PREFIX(self):
        return "refbonus_"

    @property
    def SHOW_DOCS(self):
        return getattr(settings, "REFBONUS_SHOW_DOCS", True)

    @property
    def API_TITLE(self):
        return getattr(settings, "REFBONUS_API_TITLE", "Referral Bonus API")

    @property
    def entitlement_enabled(self) -> bool:
        return bool(self.ENTITLEMENT_URL)

    def validate(self) -> None:
        """
        Checks settings consistency. Called once from AppConfig.ready().

        Raises:
            ImproperlyConfigured: If a required value is missing or out of range.
        """
        from .models import BonusType

        if self.entitlement_enabled:
            if not self.ENTITLEMENT_SHARED_SECRET:
                raise ImproperlyConfigured(
                    "REFBONUS_ENTITLEMENT_SHARED_SECRET must be set when REFBONUS_ENTITLEMENT_URL is configured."
                )
            if not self.ENTITLEMENT_ID:
                raise ImproperlyConfigured(
                    "REFBONUS_ENTITLEMENT_ID must be set when REFBONUS_ENTITLEMENT_URL is configured."
                )

        if self.DEFAULT_BONUS_TYPE not in BonusType.values:
            raise ImproperlyConfigured(
                f"REFBONUS_DEFAULT_BONUS_TYPE={self.DEFAULT_BONUS_TYPE!r} is not a known bonus type "
                f"(expected one of {BonusType.values})."
            )

        if int(self.ACCRUAL_RETRIES) < 1:
            raise ImproperlyConfigured("REFBONUS_ACCRUAL_RETRIES must be >= 1.")

        if float(self.HTTP_TIMEOUT) <= 0:
            raise ImproperlyConfigured("REFBONUS_HTTP_TIMEOUT must be positive.")


# Create singleton instance
refbonus_settings = AppSettings()
