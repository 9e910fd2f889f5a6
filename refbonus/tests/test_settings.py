"""
Self-contained Django settings for running refbonus tests in isolation.

Use: DJANGO_SETTINGS_MODULE=refbonus.tests.test_settings pytest refbonus/tests/
"""

SECRET_KEY = "test-secret-key-not-for-production"
DEBUG = True
USE_TZ = True
TIME_ZONE = "UTC"

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.admin",
    "refbonus",
]

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

ROOT_URLCONF = "refbonus.tests.urls"
MIDDLEWARE = []

# Disable migrations for ALL apps for speed and SQLite compatibility
class DisableMigrations:
    def __contains__(self, item: str) -> bool:
        return True

    def __getitem__(self, item: str):
        return None


MIGRATION_MODULES = DisableMigrations()

# Service token and end-user ID token secret for API testing
REFBONUS_API_TOKEN = "test_refbonus_token_123"
REFBONUS_AUTH_JWT_SECRET = "test_id_token_secret"

# External entitlement service (requests are intercepted in tests)
REFBONUS_ENTITLEMENT_URL = "https://entitlements.test/v1/entitlements"
REFBONUS_ENTITLEMENT_ID = "premium"
REFBONUS_ENTITLEMENT_SHARED_SECRET = "test_entitlement_secret"
REFBONUS_ENTITLEMENT_ISSUER = "refbonus-tests"
REFBONUS_ENTITLEMENT_AUDIENCE = "entitlements.test"
REFBONUS_ENTITLEMENT_KID = "kid-1"
REFBONUS_APP_VERSION = "1.2.3"
REFBONUS_APP_PLATFORM = "ios"
