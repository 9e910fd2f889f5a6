"""URL configuration for the refbonus module.

This module provides a "boxed" installation approach, allowing users to include
the refbonus app with a single line in their main urls.py. All NinjaAPI initialization
logic is encapsulated within this package.
"""

from django.urls import path
from ninja import NinjaAPI
from ninja.errors import AuthenticationError

from .api import router as referral_router
from .conf import refbonus_settings
from .schemas import StatusResponse

SHOW_DOCS = refbonus_settings.SHOW_DOCS
API_TITLE = refbonus_settings.API_TITLE

# If SHOW_DOCS=False, pass None, which disables documentation path generation
api = NinjaAPI(
    title=API_TITLE,
    docs_url="/docs" if SHOW_DOCS else None,
    redoc_url="/redoc" if SHOW_DOCS else None,
    urls_namespace="refbonus_default_api",  # To avoid conflicts with other APIs
)


@api.exception_handler(AuthenticationError)
def unauthorized(request, exc):
    return api.create_response(request, StatusResponse.error("Unauthorized"), status=401)


api.add_router("", referral_router)

urlpatterns = [
    path("", api.urls),
]
