"""Cross-origin access for the scanning web client and the tenant dashboard."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from t4g.config import Settings

# Every route is a read, a create, or a status toggle
SCAN_API_METHODS = ("GET", "POST", "PATCH")

CLIENT_REQUEST_HEADERS = ("Authorization", "Content-Type", "X-Request-Id")
DEV_IDENTITY_HEADERS = ("X-Dev-Actor-Id", "X-Dev-Actor-Type")

# Clients read these to show quota and cooldown countdowns
QUOTA_RESPONSE_HEADERS = ("X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After")


def allowed_request_headers(settings: Settings) -> list[str]:
    """Identity override headers are only accepted cross-origin while the dev bypass is live."""
    headers = list(CLIENT_REQUEST_HEADERS)
    if settings.dev_auth_bypass and settings.environment == "development":
        headers.extend(DEV_IDENTITY_HEADERS)
    return headers


def setup_cors(app: FastAPI, settings: Settings) -> None:
    # Browsers refuse credentialed responses for a wildcard origin
    wildcard = "*" in settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=not wildcard,
        allow_methods=list(SCAN_API_METHODS),
        allow_headers=allowed_request_headers(settings),
        expose_headers=list(QUOTA_RESPONSE_HEADERS),
    )
