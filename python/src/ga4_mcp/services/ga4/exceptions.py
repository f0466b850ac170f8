"""
Custom exception hierarchy for GA4 service.

This module defines exceptions for the different failure scenarios of
credential resolution and GA4 API access, so tool handlers can turn each
into a structured error response.
"""

from typing import List, Optional


class GA4BaseException(Exception):
    """Base exception for all GA4-related errors."""
    pass


class NoCredentialFoundError(GA4BaseException):
    """
    Raised when no credential source resolves to a usable payload.

    Carries the remediation checklist so the caller can show every way
    of providing credentials.
    """

    def __init__(self, remediation: List[str]):
        self.remediation = list(remediation)
        steps = "\n".join(f"{i}. {step}" for i, step in enumerate(self.remediation, start=1))
        super().__init__(f"No credentials found. Please either:\n{steps}")


class GA4APIError(GA4BaseException):
    """Raised when GA4 API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[str] = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class GA4RateLimitError(GA4APIError):
    """Raised when GA4 API rate limit is exceeded (429)."""

    def __init__(self, message: str = "GA4 API rate limit exceeded", retry_after: Optional[int] = None):
        self.retry_after = retry_after  # Seconds until rate limit resets
        super().__init__(message, status_code=429)


class GA4QuotaExceededError(GA4APIError):
    """
    Raised when GA4 API quota is exhausted for the day.

    Cannot retry until next day.
    """

    def __init__(self, message: str = "GA4 API daily quota exceeded"):
        super().__init__(message, status_code=429)


class GA4AuthenticationError(GA4APIError):
    """
    Raised when credentials are invalid or expired.

    User must re-authenticate.
    """

    def __init__(self, message: str = "GA4 authentication failed"):
        super().__init__(message, status_code=401)


class TokenRefreshError(GA4AuthenticationError):
    """
    Raised when an OAuth refresh grant fails.

    Never falls back to a lower-priority credential source.
    """

    def __init__(self, message: str = "Failed to refresh OAuth token. Please re-authenticate."):
        super().__init__(message)


class GA4InvalidPropertyError(GA4APIError):
    """Raised when the property does not exist or is not accessible."""

    def __init__(self, message: str = "Invalid GA4 property"):
        super().__init__(message, status_code=404)


class GA4TimeoutError(GA4APIError):
    """
    Raised when GA4 API call times out.

    Retryable by the caller.
    """

    def __init__(self, message: str = "GA4 API call timed out"):
        super().__init__(message, status_code=504)


class InvalidPropertyIdError(GA4BaseException, ValueError):
    """Raised when a property ID cannot be normalized to a resource name."""
    pass
