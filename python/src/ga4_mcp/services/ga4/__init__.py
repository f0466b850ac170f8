"""
GA4 (Google Analytics 4) service modules.

This package contains services for interacting with the GA4 APIs:
- credentials: credential shapes and the locations they are read from
- resolver: priority-ordered credential resolution and token refresh
- client_cache: authenticated API clients, rebuilt when token files change
- ga4_client: Admin and Data API calls with error translation
"""

from .client_cache import GA4ClientCache, get_client_cache, reset_client_cache
from .exceptions import (
    GA4APIError,
    GA4AuthenticationError,
    GA4BaseException,
    GA4InvalidPropertyError,
    GA4QuotaExceededError,
    GA4RateLimitError,
    GA4TimeoutError,
    InvalidPropertyIdError,
    NoCredentialFoundError,
    TokenRefreshError,
)
from .ga4_client import GA4Client
from .helpers import construct_property_resource_name
from .resolver import AuthSession, CredentialResolver

__all__ = [
    "GA4Client",
    "GA4ClientCache",
    "get_client_cache",
    "reset_client_cache",
    "CredentialResolver",
    "AuthSession",
    "construct_property_resource_name",
    "GA4BaseException",
    "GA4APIError",
    "GA4AuthenticationError",
    "GA4InvalidPropertyError",
    "GA4QuotaExceededError",
    "GA4RateLimitError",
    "GA4TimeoutError",
    "InvalidPropertyIdError",
    "NoCredentialFoundError",
    "TokenRefreshError",
]
