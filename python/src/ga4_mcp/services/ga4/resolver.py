"""
Priority-ordered credential resolution for GA4 API access.

The resolver walks a fixed, declarative list of credential sources and
builds an AuthSession from the first one that yields a payload. Partial
matches are never combined across sources.

Priority:
1. OAuth tokens from environment (refreshable)
2. OAuth tokens from ~/.ga4-mcp/tokens.json (refreshable)
3. Application Default Credentials (gcloud auth application-default login)
4. Service account (inline env JSON, env file, config file, Credential folder)
5. Access token only from environment (no refresh)
6. Access token only from file (shared > GTM > GA4 token file, no refresh)

Example:
    >>> resolver = CredentialResolver()
    >>> session = await resolver.resolve()
    >>> print(session.mode, session.source)
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import google.auth.exceptions
import google.auth.transport.requests
from google.auth.credentials import Credentials as GoogleCredentials
from google.oauth2 import credentials as oauth2_credentials
from google.oauth2 import service_account

from ...core.config import settings
from ..auth import TokenRefresher, persist_refreshed_token
from .credentials import (
    GA4_SCOPES,
    ADCCredential,
    AuthMode,
    CredentialMatch,
    CredentialPaths,
    OAuthCredential,
    ServiceAccountCredential,
    read_access_token_from_env,
    read_access_token_from_file,
    read_adc,
    read_oauth_from_env,
    read_oauth_from_file,
    read_service_account,
)
from .exceptions import GA4AuthenticationError, NoCredentialFoundError, TokenRefreshError

logger = logging.getLogger(__name__)

ADC_LOGIN_COMMAND = (
    "gcloud auth application-default login "
    "--scopes=https://www.googleapis.com/auth/analytics.readonly"
)

REMEDIATION_STEPS = [
    f"Run: {ADC_LOGIN_COMMAND}",
    "Set OAuth environment variables (GA4_ACCESS_TOKEN, GA4_REFRESH_TOKEN, GA4_CLIENT_ID, GA4_CLIENT_SECRET)",
    "Place OAuth tokens in ~/.ga4-mcp/tokens.json",
    "Set GOOGLE_APPLICATION_CREDENTIALS to a Service Account JSON file",
    "Place Service Account JSON in ~/.ga4-mcp/credentials.json or the Credential folder",
    "Set GA4_ACCESS_TOKEN environment variable (access token only, no auto-refresh)",
    'Place { "access_token": "..." } in ~/.ga4-mcp/tokens.json (access token only)',
]


@dataclass
class AuthSession:
    """An authenticated credential ready to build API clients from."""
    mode: AuthMode
    credentials: GoogleCredentials
    source: str
    path: Optional[Path] = None
    email: Optional[str] = None

    @property
    def can_refresh(self) -> bool:
        return self.mode != AuthMode.ACCESS_TOKEN


@dataclass
class CredentialSource:
    """One entry of the resolution chain."""
    name: str
    mode: AuthMode
    reader: Callable[[], Optional[CredentialMatch]]


def _to_naive_utc(value: datetime) -> datetime:
    # google-auth compares expiry against naive UTC timestamps
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class CredentialResolver:
    """
    Resolves the active GA4 credential.

    Features:
    - Deterministic priority order across seven credential locations
    - Refresh of near-expiry OAuth tokens with write-back to disk
    - ADC refresh and service account JWT authorization on every resolution
    - Remediation checklist when nothing is configured
    """

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        paths: Optional[CredentialPaths] = None,
        refresher: Optional[TokenRefresher] = None,
        clock: Optional[Callable[[], datetime]] = None,
        refresh_margin: Optional[timedelta] = None,
    ):
        """
        Initialize credential resolver.

        Args:
            env: Environment mapping to read (defaults to os.environ)
            paths: Credential file locations (defaults to settings)
            refresher: Token refresher for OAuth/ADC grants
            clock: Returns the current aware UTC time
            refresh_margin: Refresh tokens expiring within this window
        """
        self.env = env if env is not None else os.environ
        self.paths = paths or CredentialPaths.from_settings()
        self.refresher = refresher or TokenRefresher()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.refresh_margin = refresh_margin or timedelta(seconds=settings.GA4_TOKEN_REFRESH_MARGIN_SECONDS)
        self.sources = self._build_sources()

    def _build_sources(self) -> List[CredentialSource]:
        return [
            CredentialSource(
                "OAuth tokens from environment variables", AuthMode.OAUTH,
                lambda: read_oauth_from_env(self.env),
            ),
            CredentialSource(
                "OAuth tokens from ~/.ga4-mcp/tokens.json", AuthMode.OAUTH,
                lambda: read_oauth_from_file(self.paths),
            ),
            CredentialSource(
                "Application Default Credentials (gcloud login)", AuthMode.ADC,
                lambda: read_adc(self.env, self.paths),
            ),
            CredentialSource(
                "Service Account", AuthMode.SERVICE_ACCOUNT,
                lambda: read_service_account(self.env, self.paths),
            ),
            CredentialSource(
                "access token only from environment (no refresh support)", AuthMode.ACCESS_TOKEN,
                lambda: read_access_token_from_env(self.env),
            ),
            CredentialSource(
                "access token only from token file (no refresh support)", AuthMode.ACCESS_TOKEN,
                lambda: read_access_token_from_file(self.paths),
            ),
        ]

    def find(self) -> Optional[Tuple[CredentialSource, CredentialMatch]]:
        """
        Return the first (source, match) pair in priority order.

        Returns:
            (CredentialSource, CredentialMatch), or None if nothing resolves
        """
        for source in self.sources:
            match = source.reader()
            if match is not None:
                return source, match
        return None

    async def resolve(self) -> AuthSession:
        """
        Resolve and authenticate the highest-priority credential.

        Returns:
            Authenticated session

        Raises:
            NoCredentialFoundError: If no source yields a credential
            TokenRefreshError: If a required refresh fails
            GA4AuthenticationError: If a service account cannot be authorized
        """
        found = self.find()
        if found is None:
            raise NoCredentialFoundError(REMEDIATION_STEPS)

        source, match = found
        logger.info(f"Using {source.name}")

        if source.mode == AuthMode.OAUTH:
            return await self._authorize_oauth(match)
        if source.mode == AuthMode.ADC:
            return await self._authorize_adc(match)
        if source.mode == AuthMode.SERVICE_ACCOUNT:
            return await self._authorize_service_account(match)
        return self._authorize_access_token(match)

    def describe(self) -> Optional[Dict[str, Any]]:
        """
        Report which credential mode would be used, without authenticating.

        Returns:
            {"mode": ..., "email": ...} or None when nothing is configured
        """
        found = self.find()
        if found is None:
            return None
        source, match = found
        info: Dict[str, Any] = {"mode": source.mode.value}
        if isinstance(match.credential, ServiceAccountCredential):
            info["email"] = match.credential.client_email
        return info

    def needs_refresh(self, credential: OAuthCredential) -> bool:
        """True when the stored token is missing or expires within the refresh margin."""
        if not credential.access_token:
            return True
        expiry = credential.expires_at()
        return expiry is not None and expiry < self.clock() + self.refresh_margin

    async def _authorize_oauth(self, match: CredentialMatch) -> AuthSession:
        credential: OAuthCredential = match.credential
        access_token = credential.access_token
        expiry = credential.expires_at()

        if self.needs_refresh(credential):
            logger.info("OAuth token expired or about to expire, refreshing")
            refreshed = await self.refresher.refresh(
                client_id=credential.client_id,
                client_secret=credential.client_secret,
                refresh_token=credential.refresh_token,
                token_uri=credential.token_uri,
            )
            target = match.path or self.paths.oauth_token
            persist_refreshed_token(target, credential.model_dump(exclude_none=True), refreshed)
            access_token = refreshed.access_token
            expiry = refreshed.expiry

        google_creds = oauth2_credentials.Credentials(
            token=access_token,
            refresh_token=credential.refresh_token,
            token_uri=credential.token_uri or settings.GOOGLE_TOKEN_URL,
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            scopes=GA4_SCOPES,
            expiry=_to_naive_utc(expiry) if expiry else None,
        )
        return AuthSession(mode=AuthMode.OAUTH, credentials=google_creds, source=match.source, path=match.path)

    async def _authorize_adc(self, match: CredentialMatch) -> AuthSession:
        credential: ADCCredential = match.credential
        try:
            refreshed = await self.refresher.refresh(
                client_id=credential.client_id,
                client_secret=credential.client_secret,
                refresh_token=credential.refresh_token,
            )
        except TokenRefreshError as e:
            raise TokenRefreshError(f"Failed to refresh ADC token. Please run: {ADC_LOGIN_COMMAND}") from e

        logger.info("ADC token refreshed successfully")
        google_creds = oauth2_credentials.Credentials(
            token=refreshed.access_token,
            refresh_token=credential.refresh_token,
            token_uri=settings.GOOGLE_TOKEN_URL,
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            scopes=GA4_SCOPES,
            expiry=_to_naive_utc(refreshed.expiry),
        )
        return AuthSession(mode=AuthMode.ADC, credentials=google_creds, source=match.source, path=match.path)

    async def _authorize_service_account(self, match: CredentialMatch) -> AuthSession:
        credential: ServiceAccountCredential = match.credential
        logger.info(f"Using Service Account: {credential.client_email}")
        try:
            google_creds = service_account.Credentials.from_service_account_info(
                credential.model_dump(exclude_none=True),
                scopes=GA4_SCOPES,
            )
            # Signs a JWT and exchanges it for an access token
            await asyncio.to_thread(google_creds.refresh, google.auth.transport.requests.Request())
        except (ValueError, google.auth.exceptions.GoogleAuthError) as e:
            logger.error(f"Service account authorization failed: {e}")
            raise GA4AuthenticationError(
                f"Service account authorization failed for {credential.client_email}: {e}"
            ) from e

        return AuthSession(
            mode=AuthMode.SERVICE_ACCOUNT,
            credentials=google_creds,
            source=match.source,
            path=match.path,
            email=credential.client_email,
        )

    def _authorize_access_token(self, match: CredentialMatch) -> AuthSession:
        logger.warning("Authenticated with access token only (no auto-refresh); it will eventually expire")
        google_creds = oauth2_credentials.Credentials(token=match.credential.access_token)
        return AuthSession(mode=AuthMode.ACCESS_TOKEN, credentials=google_creds, source=match.source, path=match.path)
