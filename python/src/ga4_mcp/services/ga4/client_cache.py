"""
Process-wide cache of authenticated GA4 API clients.

Clients are built lazily from the resolved AuthSession and reused for the
lifetime of the process. Before every access the cache fingerprints the
highest-priority access token file (shared > GTM > GA4); if that file was
rewritten since it was last observed, the session and every client are
dropped and rebuilt on the next request, whatever the active auth mode.

Usage:
    from ga4_mcp.services.ga4.client_cache import get_client_cache

    cache = get_client_cache()
    data_client = await cache.get_data_client()
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from google.analytics import admin_v1alpha, admin_v1beta, data_v1beta
from google.api_core.gapic_v1.client_info import ClientInfo

from ...core.config import settings
from .credentials import CredentialPaths
from .resolver import AuthSession, CredentialResolver

logger = logging.getLogger(__name__)

_CLIENT_INFO = ClientInfo(user_agent=f"{settings.SERVER_NAME}/{settings.SERVER_VERSION}")


@dataclass(frozen=True)
class TokenFileFingerprint:
    """Identifies which token file was seen and when it last changed."""
    path: Path
    mtime_ns: int


def fingerprint_token_file(candidates: Iterable[Path]) -> Optional[TokenFileFingerprint]:
    """Fingerprint the first existing file among ``candidates``."""
    for path in candidates:
        try:
            stat = path.stat()
        except OSError:
            continue
        return TokenFileFingerprint(path=path, mtime_ns=stat.st_mtime_ns)
    return None


def should_invalidate(
    current: Optional[TokenFileFingerprint],
    cached: Optional[TokenFileFingerprint],
) -> bool:
    """True when a previously observed token file has changed or been replaced."""
    if current is None or cached is None:
        return False
    return current != cached


def _build_admin_client(credentials) -> admin_v1beta.AnalyticsAdminServiceAsyncClient:
    return admin_v1beta.AnalyticsAdminServiceAsyncClient(credentials=credentials, client_info=_CLIENT_INFO)


def _build_admin_alpha_client(credentials) -> admin_v1alpha.AnalyticsAdminServiceAsyncClient:
    return admin_v1alpha.AnalyticsAdminServiceAsyncClient(credentials=credentials, client_info=_CLIENT_INFO)


def _build_data_client(credentials) -> data_v1beta.BetaAnalyticsDataAsyncClient:
    return data_v1beta.BetaAnalyticsDataAsyncClient(credentials=credentials, client_info=_CLIENT_INFO)


class GA4ClientCache:
    """
    Memoizes the auth session and the Admin/Data API clients built from it.

    The fingerprint check, session resolution and client construction run
    under one asyncio.Lock, so concurrent tool calls never race a rebuild.
    """

    def __init__(
        self,
        resolver: Optional[CredentialResolver] = None,
        paths: Optional[CredentialPaths] = None,
        client_builders: Optional[Dict[str, Callable[[Any], Any]]] = None,
    ):
        """
        Initialize client cache.

        Args:
            resolver: Credential resolver (defaults to one using settings)
            paths: Credential file locations used for fingerprinting
            client_builders: Optional overrides for "admin", "admin_alpha" and "data" builders
        """
        self.paths = paths or (resolver.paths if resolver else CredentialPaths.from_settings())
        self.resolver = resolver or CredentialResolver(paths=self.paths)
        self._builders: Dict[str, Callable[[Any], Any]] = {
            "admin": _build_admin_client,
            "admin_alpha": _build_admin_alpha_client,
            "data": _build_data_client,
        }
        if client_builders:
            self._builders.update(client_builders)

        self._lock = asyncio.Lock()
        self._session: Optional[AuthSession] = None
        self._clients: Dict[str, Any] = {}
        self._fingerprint: Optional[TokenFileFingerprint] = None

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    def invalidate(self) -> None:
        """Drop the cached session, auth mode, email and every client."""
        self._session = None
        self._clients.clear()

    def _check_and_invalidate(self) -> None:
        current = fingerprint_token_file(self.paths.access_token_files)
        if current is None:
            return
        if should_invalidate(current, self._fingerprint):
            logger.info("Token file changed, invalidating cache...")
            self.invalidate()
        self._fingerprint = current

    async def _get_client(self, kind: str) -> Any:
        async with self._lock:
            self._check_and_invalidate()

            client = self._clients.get(kind)
            if client is not None:
                return client

            if self._session is None:
                self._session = await self.resolver.resolve()

            client = self._builders[kind](self._session.credentials)
            self._clients[kind] = client
            return client

    async def get_admin_client(self) -> admin_v1beta.AnalyticsAdminServiceAsyncClient:
        """Get the Analytics Admin API (v1beta) client."""
        return await self._get_client("admin")

    async def get_admin_alpha_client(self) -> admin_v1alpha.AnalyticsAdminServiceAsyncClient:
        """Get the Analytics Admin API (v1alpha) client, needed for annotations."""
        return await self._get_client("admin_alpha")

    async def get_data_client(self) -> data_v1beta.BetaAnalyticsDataAsyncClient:
        """Get the Analytics Data API (v1beta) client."""
        return await self._get_client("data")

    def get_credentials_info(self) -> Optional[Dict[str, Any]]:
        """
        Describe the active (or would-be) credential for logging.

        Returns:
            {"mode": ..., "email": ...} or None when nothing is configured
        """
        if self._session is not None:
            info: Dict[str, Any] = {"mode": self._session.mode.value}
            if self._session.email:
                info["email"] = self._session.email
            return info
        return self.resolver.describe()


_client_cache: Optional[GA4ClientCache] = None


def get_client_cache() -> GA4ClientCache:
    """Get global client cache instance."""
    global _client_cache

    if _client_cache is None:
        _client_cache = GA4ClientCache()

    return _client_cache


def reset_client_cache() -> None:
    """Discard the global client cache (tests and credential reconfiguration)."""
    global _client_cache
    _client_cache = None
