"""
Unit tests for priority-ordered credential resolution.
"""

import json
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ga4_mcp.services.auth import RefreshedToken
from ga4_mcp.services.ga4.credentials import AuthMode
from ga4_mcp.services.ga4.exceptions import NoCredentialFoundError, TokenRefreshError
from ga4_mcp.services.ga4.resolver import REMEDIATION_STEPS, CredentialResolver


def epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


@pytest.fixture
def refresher(clock):
    mock = MagicMock()
    mock.refresh = AsyncMock(return_value=RefreshedToken(
        access_token="ya29.refreshed",
        expiry=clock() + timedelta(hours=1),
    ))
    return mock


@pytest.fixture
def make_resolver(credential_paths, refresher, clock):
    def _make(env=None) -> CredentialResolver:
        return CredentialResolver(
            env=env or {},
            paths=credential_paths,
            refresher=refresher,
            clock=clock,
            refresh_margin=timedelta(seconds=60),
        )

    return _make


@pytest.fixture
def full_oauth_env():
    return {
        "GA4_ACCESS_TOKEN": "env-token",
        "GA4_REFRESH_TOKEN": "env-refresh",
        "GA4_CLIENT_ID": "env-client",
        "GA4_CLIENT_SECRET": "env-secret",
    }


@pytest.fixture
def adc_payload():
    return {
        "type": "authorized_user",
        "client_id": "adc-client",
        "client_secret": "adc-secret",
        "refresh_token": "adc-refresh",
    }


class TestPriorityOrder:
    """Test that the highest-priority source always wins."""

    def test_env_oauth_beats_everything(
        self, make_resolver, full_oauth_env, credential_paths, write_json,
        oauth_tokens, adc_payload, service_account_info,
    ):
        write_json(credential_paths.oauth_token, oauth_tokens)
        write_json(credential_paths.adc_default, adc_payload)
        write_json(credential_paths.service_account_config, service_account_info)
        write_json(credential_paths.shared_token, {"access_token": "shared"})

        source, match = make_resolver(full_oauth_env).find()
        assert source.mode == AuthMode.OAUTH
        assert match.path is None

    def test_token_file_oauth_beats_adc(self, make_resolver, credential_paths, write_json, oauth_tokens, adc_payload):
        write_json(credential_paths.oauth_token, oauth_tokens)
        write_json(credential_paths.adc_default, adc_payload)

        source, match = make_resolver().find()
        assert source.mode == AuthMode.OAUTH
        assert match.path == credential_paths.oauth_token

    def test_adc_beats_service_account(
        self, make_resolver, credential_paths, write_json, adc_payload, service_account_info
    ):
        write_json(credential_paths.adc_default, adc_payload)
        write_json(credential_paths.service_account_config, service_account_info)

        source, _ = make_resolver().find()
        assert source.mode == AuthMode.ADC

    def test_service_account_beats_access_token(
        self, make_resolver, credential_paths, write_json, service_account_info
    ):
        write_json(credential_paths.service_account_config, service_account_info)

        source, _ = make_resolver({"GA4_ACCESS_TOKEN": "bare"}).find()
        assert source.mode == AuthMode.SERVICE_ACCOUNT

    def test_env_access_token_beats_token_files(self, make_resolver, credential_paths, write_json):
        write_json(credential_paths.shared_token, {"access_token": "shared"})

        source, match = make_resolver({"GA4_ACCESS_TOKEN": "bare"}).find()
        assert source.mode == AuthMode.ACCESS_TOKEN
        assert match.credential.access_token == "bare"

    def test_partial_env_is_not_combined_with_files(self, make_resolver, credential_paths, write_json):
        write_json(credential_paths.gtm_token, {"access_token": "gtm"})

        # Refresh token without client credentials: neither the OAuth source nor a mix
        source, match = make_resolver({"GA4_REFRESH_TOKEN": "orphan"}).find()
        assert source.mode == AuthMode.ACCESS_TOKEN
        assert match.credential.access_token == "gtm"

    def test_nothing_configured(self, make_resolver):
        assert make_resolver().find() is None
        assert make_resolver().describe() is None


class TestOAuthRefresh:
    """Test refresh-before-use for OAuth token files."""

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed_and_persisted_once(
        self, make_resolver, refresher, credential_paths, write_json, oauth_tokens, clock
    ):
        oauth_tokens["expiry_date"] = epoch_ms(clock() + timedelta(seconds=30))
        oauth_tokens["scope"] = "analytics.readonly"
        write_json(credential_paths.oauth_token, oauth_tokens)

        session = await make_resolver().resolve()

        refresher.refresh.assert_awaited_once()
        assert refresher.refresh.await_args.kwargs["refresh_token"] == oauth_tokens["refresh_token"]
        saved = json.loads(credential_paths.oauth_token.read_text(encoding="utf-8"))
        assert saved["access_token"] == "ya29.refreshed"
        assert saved["expiry_date"] == epoch_ms(clock() + timedelta(hours=1))
        assert saved["scope"] == "analytics.readonly"
        assert session.mode == AuthMode.OAUTH
        assert session.credentials.token == "ya29.refreshed"

    @pytest.mark.asyncio
    async def test_fresh_token_not_refreshed(
        self, make_resolver, refresher, credential_paths, write_json, oauth_tokens, clock
    ):
        oauth_tokens["expiry_date"] = epoch_ms(clock() + timedelta(minutes=30))
        write_json(credential_paths.oauth_token, oauth_tokens)
        before = credential_paths.oauth_token.read_text(encoding="utf-8")

        session = await make_resolver().resolve()

        refresher.refresh.assert_not_awaited()
        assert credential_paths.oauth_token.read_text(encoding="utf-8") == before
        assert session.credentials.token == "ya29.stored"

    @pytest.mark.asyncio
    async def test_no_expiry_not_refreshed(self, make_resolver, refresher, credential_paths, write_json, oauth_tokens):
        write_json(credential_paths.oauth_token, oauth_tokens)

        await make_resolver().resolve()

        refresher.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_access_token_refreshed(
        self, make_resolver, refresher, credential_paths, write_json, oauth_tokens
    ):
        del oauth_tokens["access_token"]
        write_json(credential_paths.oauth_token, oauth_tokens)

        session = await make_resolver().resolve()

        refresher.refresh.assert_awaited_once()
        assert session.credentials.token == "ya29.refreshed"

    @pytest.mark.asyncio
    async def test_missing_access_token_refreshed_despite_future_expiry(
        self, make_resolver, refresher, credential_paths, write_json, oauth_tokens, clock
    ):
        del oauth_tokens["access_token"]
        oauth_tokens["expiry_date"] = epoch_ms(clock() + timedelta(minutes=30))
        write_json(credential_paths.oauth_token, oauth_tokens)

        session = await make_resolver().resolve()

        refresher.refresh.assert_awaited_once()
        saved = json.loads(credential_paths.oauth_token.read_text(encoding="utf-8"))
        assert saved["access_token"] == "ya29.refreshed"
        assert session.credentials.token == "ya29.refreshed"

    @pytest.mark.asyncio
    async def test_env_oauth_refresh_persists_to_tokens_file(
        self, make_resolver, refresher, credential_paths, full_oauth_env
    ):
        resolver = make_resolver(full_oauth_env)
        resolver.needs_refresh = MagicMock(return_value=True)

        await resolver.resolve()

        saved = json.loads(credential_paths.oauth_token.read_text(encoding="utf-8"))
        assert saved["refresh_token"] == "env-refresh"
        assert saved["access_token"] == "ya29.refreshed"

    @pytest.mark.asyncio
    async def test_refresh_failure_does_not_fall_through(
        self, make_resolver, refresher, credential_paths, write_json, oauth_tokens, adc_payload, clock
    ):
        oauth_tokens["expiry_date"] = epoch_ms(clock() - timedelta(minutes=5))
        write_json(credential_paths.oauth_token, oauth_tokens)
        write_json(credential_paths.adc_default, adc_payload)
        refresher.refresh.side_effect = TokenRefreshError()

        with pytest.raises(TokenRefreshError):
            await make_resolver().resolve()

        refresher.refresh.assert_awaited_once()
        assert refresher.refresh.await_args.kwargs["client_id"] == oauth_tokens["client_id"]


class TestOtherModes:
    """Test ADC, service account and access-token sessions."""

    @pytest.mark.asyncio
    async def test_adc_always_refreshed_not_persisted(
        self, make_resolver, refresher, credential_paths, write_json, adc_payload
    ):
        write_json(credential_paths.adc_default, adc_payload)
        before = credential_paths.adc_default.read_text(encoding="utf-8")

        session = await make_resolver().resolve()

        refresher.refresh.assert_awaited_once()
        assert session.mode == AuthMode.ADC
        assert session.credentials.token == "ya29.refreshed"
        assert credential_paths.adc_default.read_text(encoding="utf-8") == before
        assert not credential_paths.oauth_token.exists()

    @pytest.mark.asyncio
    async def test_adc_refresh_failure_mentions_gcloud(
        self, make_resolver, refresher, credential_paths, write_json, adc_payload
    ):
        write_json(credential_paths.adc_default, adc_payload)
        refresher.refresh.side_effect = TokenRefreshError()

        with pytest.raises(TokenRefreshError, match="gcloud auth application-default login"):
            await make_resolver().resolve()

    @pytest.mark.asyncio
    async def test_service_account_session(self, make_resolver, credential_paths, write_json, service_account_info):
        write_json(credential_paths.service_account_config, service_account_info)
        google_creds = MagicMock()

        with patch(
            "ga4_mcp.services.ga4.resolver.service_account.Credentials.from_service_account_info",
            return_value=google_creds,
        ) as from_info:
            session = await make_resolver().resolve()

        from_info.assert_called_once()
        google_creds.refresh.assert_called_once()
        assert session.mode == AuthMode.SERVICE_ACCOUNT
        assert session.email == service_account_info["client_email"]
        assert session.credentials is google_creds

    @pytest.mark.asyncio
    async def test_access_token_session_cannot_refresh(self, make_resolver, refresher):
        session = await make_resolver({"GA4_ACCESS_TOKEN": "bare"}).resolve()

        refresher.refresh.assert_not_awaited()
        assert session.mode == AuthMode.ACCESS_TOKEN
        assert session.credentials.token == "bare"
        assert not session.can_refresh

    def test_describe_service_account(self, make_resolver, credential_paths, write_json, service_account_info):
        write_json(credential_paths.service_account_config, service_account_info)
        assert make_resolver().describe() == {
            "mode": "service_account",
            "email": service_account_info["client_email"],
        }


class TestNoCredentials:
    """Test the remediation error."""

    @pytest.mark.asyncio
    async def test_lists_every_remediation(self, make_resolver):
        with pytest.raises(NoCredentialFoundError) as exc_info:
            await make_resolver().resolve()

        error = exc_info.value
        assert error.remediation == REMEDIATION_STEPS
        assert len(error.remediation) == 7
        assert str(error).startswith("No credentials found. Please either:")
        assert "gcloud auth application-default login" in str(error)
