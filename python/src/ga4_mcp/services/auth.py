"""
OAuth token refresh service.

Handles:
- refresh_token grant exchange against Google's token endpoint
- Transport-level retries with exponential backoff
- Persisting refreshed tokens back to the originating token file
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    RetryError,
)

from ..core.config import settings
from .ga4.exceptions import TokenRefreshError

logger = logging.getLogger(__name__)


@dataclass
class RefreshedToken:
    """Result of a successful refresh grant."""
    access_token: str
    expiry: datetime

    @property
    def expiry_date(self) -> int:
        """Expiry as epoch milliseconds (the token file format)."""
        return int(self.expiry.timestamp() * 1000)


class TokenRefresher:
    """
    Exchanges refresh tokens for new access tokens.

    Example:
        >>> refresher = TokenRefresher()
        >>> token = await refresher.refresh(
        ...     client_id="...", client_secret="...", refresh_token="..."
        ... )
        >>> print(token.access_token, token.expiry)
    """

    MAX_RETRIES = 3
    INITIAL_WAIT = 1  # seconds
    MAX_WAIT = 4  # seconds

    def __init__(
        self,
        token_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize token refresher.

        Args:
            token_url: OAuth token endpoint (defaults to settings.GOOGLE_TOKEN_URL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.token_url = token_url or settings.GOOGLE_TOKEN_URL
        self.timeout = timeout or settings.GA4_TOKEN_REFRESH_TIMEOUT_SECONDS
        self.transport = transport

    async def refresh(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_uri: Optional[str] = None,
    ) -> RefreshedToken:
        """
        Run the refresh_token grant.

        Args:
            client_id: OAuth client ID
            client_secret: OAuth client secret
            refresh_token: Long-lived refresh token
            token_uri: Token endpoint override from the credential file

        Returns:
            New access token and its expiry

        Raises:
            TokenRefreshError: If the grant is rejected or the endpoint is unreachable
        """
        url = token_uri or self.token_url
        payload = {
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        @retry(
            stop=stop_after_attempt(self.MAX_RETRIES),
            wait=wait_exponential(multiplier=self.INITIAL_WAIT, max=self.MAX_WAIT),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        async def post_grant() -> Dict[str, Any]:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, data=payload)
                response.raise_for_status()
                return response.json()

        try:
            token_data = await post_grant()
        except httpx.HTTPStatusError as e:
            logger.error(f"Token refresh rejected: {e.response.status_code} {e.response.text}")
            raise TokenRefreshError(
                f"Failed to refresh OAuth token (HTTP {e.response.status_code}). Please re-authenticate."
            ) from e
        except (httpx.TransportError, RetryError) as e:
            logger.error(f"Token refresh failed after {self.MAX_RETRIES} attempts: {e}")
            raise TokenRefreshError(f"Failed to refresh OAuth token: {e}. Please re-authenticate.") from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise TokenRefreshError("Token endpoint returned no access_token. Please re-authenticate.")

        expires_in = int(token_data.get("expires_in", 3600))
        expiry = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        logger.info("OAuth token refreshed")
        return RefreshedToken(access_token=access_token, expiry=expiry)


def persist_refreshed_token(path: Path, tokens: Dict[str, Any], refreshed: RefreshedToken) -> None:
    """
    Write refreshed tokens back to a token file.

    Fields already in the file (or in ``tokens``) are preserved; only
    access_token and expiry_date are overwritten.

    Args:
        path: Token file to write
        tokens: Credential fields the refresh started from
        refreshed: Result of the refresh grant
    """
    existing: Dict[str, Any] = {}
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                existing = loaded
        except (OSError, ValueError) as e:
            logger.warning(f"Overwriting unreadable token file {path}: {e}")

    updated = {**existing, **tokens}
    updated["access_token"] = refreshed.access_token
    updated["expiry_date"] = refreshed.expiry_date

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(updated, f, indent=2)
    logger.info(f"Refreshed OAuth token saved to {path}")
