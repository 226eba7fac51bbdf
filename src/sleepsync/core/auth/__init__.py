"""Google OAuth for the Fit REST API: consent flow, token client, token file."""

from .google_flow import FITNESS_SLEEP_SCOPES, GoogleAuthFlow, IssuedToken
from .token_client import (
    HttpResponse,
    HttpTransport,
    OAuthFlow,
    OAuthToken,
    RateLimiter,
    TokenClient,
    UrllibTransport,
)
from .token_store import TokenStore

__all__ = [
    "FITNESS_SLEEP_SCOPES",
    "GoogleAuthFlow",
    "HttpResponse",
    "HttpTransport",
    "IssuedToken",
    "OAuthFlow",
    "OAuthToken",
    "RateLimiter",
    "TokenClient",
    "TokenStore",
    "UrllibTransport",
]
