"""
Unit tests for the GA4 client cache and token-file invalidation.
"""

import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from ga4_mcp.services.ga4.client_cache import (
    GA4ClientCache,
    TokenFileFingerprint,
    fingerprint_token_file,
    get_client_cache,
    reset_client_cache,
    should_invalidate,
)
from ga4_mcp.services.ga4.credentials import AuthMode
from ga4_mcp.services.ga4.exceptions import NoCredentialFoundError
from ga4_mcp.services.ga4.resolver import AuthSession


class TestShouldInvalidate:
    """Test the pure invalidation decision."""

    def test_first_observation_does_not_invalidate(self):
        current = TokenFileFingerprint(Path("/t/google.json"), 1)
        assert should_invalidate(current, None) is False

    def test_no_current_file_does_not_invalidate(self):
        cached = TokenFileFingerprint(Path("/t/google.json"), 1)
        assert should_invalidate(None, cached) is False

    def test_unchanged_file(self):
        fp = TokenFileFingerprint(Path("/t/google.json"), 1)
        assert should_invalidate(fp, TokenFileFingerprint(Path("/t/google.json"), 1)) is False

    def test_mtime_changed(self):
        assert should_invalidate(
            TokenFileFingerprint(Path("/t/google.json"), 2),
            TokenFileFingerprint(Path("/t/google.json"), 1),
        ) is True

    def test_different_file_took_priority(self):
        assert should_invalidate(
            TokenFileFingerprint(Path("/t/google.json"), 1),
            TokenFileFingerprint(Path("/t/access-token.json"), 1),
        ) is True


def test_fingerprint_uses_first_existing_file(tmp_path):
    first = tmp_path / "first.json"
    second = tmp_path / "second.json"
    second.write_text("{}", encoding="utf-8")

    fp = fingerprint_token_file([first, second])
    assert fp.path == second

    first.write_text("{}", encoding="utf-8")
    assert fingerprint_token_file([first, second]).path == first
    assert fingerprint_token_file([tmp_path / "none.json"]) is None


@pytest.fixture
def resolver(credential_paths):
    mock = MagicMock()
    mock.paths = credential_paths
    mock.resolve = AsyncMock(side_effect=lambda: AuthSession(
        mode=AuthMode.ACCESS_TOKEN, credentials=MagicMock(), source="test",
    ))
    return mock


@pytest.fixture
def cache(resolver, credential_paths):
    builders = {
        "admin": lambda creds: MagicMock(name="admin"),
        "admin_alpha": lambda creds: MagicMock(name="admin_alpha"),
        "data": lambda creds: MagicMock(name="data"),
    }
    return GA4ClientCache(resolver=resolver, paths=credential_paths, client_builders=builders)


class TestGA4ClientCache:
    """Test memoization and invalidation."""

    @pytest.mark.asyncio
    async def test_clients_are_memoized(self, cache, resolver):
        first = await cache.get_data_client()
        second = await cache.get_data_client()
        admin = await cache.get_admin_client()

        assert first is second
        assert admin is not first
        resolver.resolve.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rebuild_after_token_file_rewrite(self, cache, resolver, credential_paths, write_json):
        token_file = write_json(credential_paths.shared_token, {"access_token": "one"})
        os.utime(token_file, ns=(1_000_000_000, 1_000_000_000))

        first = await cache.get_data_client()
        assert await cache.get_data_client() is first

        write_json(token_file, {"access_token": "two"})
        os.utime(token_file, ns=(2_000_000_000, 2_000_000_000))

        rebuilt = await cache.get_data_client()
        assert rebuilt is not first
        assert resolver.resolve.await_count == 2

    @pytest.mark.asyncio
    async def test_token_file_rewrite_drops_service_account_session(
        self, cache, resolver, credential_paths, write_json
    ):
        service_account = AuthSession(
            mode=AuthMode.SERVICE_ACCOUNT,
            credentials=MagicMock(),
            source="sa",
            email="sa@proj.iam.gserviceaccount.com",
        )
        oauth = AuthSession(mode=AuthMode.OAUTH, credentials=MagicMock(), source="oauth")
        resolver.resolve = AsyncMock(side_effect=[service_account, oauth])

        token_file = write_json(credential_paths.shared_token, {"access_token": "one"})
        os.utime(token_file, ns=(1_000_000_000, 1_000_000_000))
        first = await cache.get_data_client()
        assert cache.get_credentials_info() == {
            "mode": "service_account",
            "email": "sa@proj.iam.gserviceaccount.com",
        }

        write_json(token_file, {"access_token": "two"})
        os.utime(token_file, ns=(2_000_000_000, 2_000_000_000))
        rebuilt = await cache.get_data_client()

        assert rebuilt is not first
        assert resolver.resolve.await_count == 2
        assert cache.session is oauth
        assert cache.get_credentials_info() == {"mode": "oauth"}

    @pytest.mark.asyncio
    async def test_token_file_appearing_later_does_not_invalidate(
        self, cache, resolver, credential_paths, write_json
    ):
        first = await cache.get_data_client()
        write_json(credential_paths.gtm_token, {"access_token": "gtm"})

        assert await cache.get_data_client() is first
        resolver.resolve.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resolution_error_is_not_cached(self, cache, resolver):
        resolver.resolve.side_effect = NoCredentialFoundError(["step"])

        with pytest.raises(NoCredentialFoundError):
            await cache.get_data_client()
        assert cache.session is None

    @pytest.mark.asyncio
    async def test_invalidate_drops_session_and_clients(self, cache, resolver):
        first = await cache.get_admin_alpha_client()
        cache.invalidate()

        assert cache.session is None
        assert await cache.get_admin_alpha_client() is not first

    @pytest.mark.asyncio
    async def test_credentials_info_after_resolution(self, cache):
        await cache.get_data_client()
        assert cache.get_credentials_info() == {"mode": "access-token"}

    def test_credentials_info_before_resolution_uses_resolver(self, cache, resolver):
        resolver.describe.return_value = {"mode": "adc"}
        assert cache.get_credentials_info() == {"mode": "adc"}


def test_global_cache_is_shared_until_reset():
    first = get_client_cache()
    assert get_client_cache() is first
    reset_client_cache()
    assert get_client_cache() is not first
