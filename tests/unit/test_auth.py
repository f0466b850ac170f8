"""
Unit tests for the OAuth token refresh service.

Uses httpx.MockTransport in place of Google's token endpoint.
"""

import json
from datetime import datetime, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from ga4_mcp.services.auth import RefreshedToken, TokenRefresher, persist_refreshed_token
from ga4_mcp.services.ga4.exceptions import GA4AuthenticationError, TokenRefreshError

TOKEN_URL = "https://oauth2.example.test/token"


def make_refresher(handler) -> TokenRefresher:
    return TokenRefresher(token_url=TOKEN_URL, timeout=5.0, transport=httpx.MockTransport(handler))


class TestTokenRefresher:
    """Test the refresh_token grant."""

    @pytest.mark.asyncio
    async def test_refresh_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "ya29.new", "expires_in": 1800})

        before = datetime.now(timezone.utc)
        token = await make_refresher(handler).refresh("cid", "secret", "refresh")

        assert token.access_token == "ya29.new"
        assert (token.expiry - before).total_seconds() >= 1800 - 1
        assert len(seen) == 1
        assert str(seen[0].url) == TOKEN_URL
        form = parse_qs(seen[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh"]
        assert form["client_id"] == ["cid"]

    @pytest.mark.asyncio
    async def test_token_uri_override(self):
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json={"access_token": "tok"})

        await make_refresher(handler).refresh("cid", "secret", "refresh", token_uri="https://other.test/token")
        assert urls == ["https://other.test/token"]

    @pytest.mark.asyncio
    async def test_rejected_grant_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "invalid_grant"})

        with pytest.raises(TokenRefreshError, match="HTTP 400"):
            await make_refresher(handler).refresh("cid", "secret", "revoked")

    @pytest.mark.asyncio
    async def test_missing_access_token_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(TokenRefreshError):
            await make_refresher(handler).refresh("cid", "secret", "refresh")

    @pytest.mark.asyncio
    async def test_transport_error_is_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"access_token": "tok"})

        token = await make_refresher(handler).refresh("cid", "secret", "refresh")
        assert token.access_token == "tok"
        assert len(attempts) == 2

    def test_refresh_error_is_authentication_error(self):
        assert issubclass(TokenRefreshError, GA4AuthenticationError)


class TestPersistRefreshedToken:
    """Test write-back of refreshed tokens."""

    def test_preserves_existing_fields(self, tmp_path, oauth_tokens):
        path = tmp_path / ".ga4-mcp" / "tokens.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({**oauth_tokens, "scope": "analytics.readonly"}), encoding="utf-8")

        expiry = datetime(2026, 1, 15, 13, 0, 0, tzinfo=timezone.utc)
        persist_refreshed_token(path, oauth_tokens, RefreshedToken(access_token="ya29.new", expiry=expiry))

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["access_token"] == "ya29.new"
        assert saved["expiry_date"] == 1768482000000
        assert saved["refresh_token"] == oauth_tokens["refresh_token"]
        assert saved["scope"] == "analytics.readonly"

    def test_creates_missing_directory(self, tmp_path, oauth_tokens):
        path = tmp_path / "new" / "tokens.json"
        expiry = datetime(2026, 1, 15, 13, 0, 0, tzinfo=timezone.utc)
        persist_refreshed_token(path, oauth_tokens, RefreshedToken(access_token="tok", expiry=expiry))

        saved = json.loads(path.read_text(encoding="utf-8"))
        assert saved["client_secret"] == oauth_tokens["client_secret"]
        assert saved["access_token"] == "tok"
