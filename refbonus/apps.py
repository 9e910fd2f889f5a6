"""AppConfig for the refbonus module."""

from django.apps import AppConfig


class RefbonusConfig(AppConfig):
    """Validates configuration and connects model signal handlers on startup."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "refbonus"
    label = "refbonus"
    verbose_name = "Referral Bonus"

    def ready(self):
        from .conf import refbonus_settings
        from . import handlers  # noqa: F401

        refbonus_settings.validate()
