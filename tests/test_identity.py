# tests/test_identity.py
"""Tests for the token-backed identity provider."""

import httpx
import pytest

from soulspeak.core.errors import IdentityError
from soulspeak.identity import CurrentUser, IdentityProvider, TokenIdentityProvider
from tests.conftest import JWT_SECRET, VIEWER_ID


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_verified_token_resolves_viewer(self, make_token):
        provider = TokenIdentityProvider(make_token(), secret=JWT_SECRET)

        user = await provider.current_user()

        assert user == CurrentUser(id=VIEWER_ID, email="viewer@example.com")
        assert user.handle == "viewer"
        assert isinstance(provider, IdentityProvider)

    @pytest.mark.asyncio
    async def test_wrong_secret_is_treated_as_signed_out(self, make_token):
        provider = TokenIdentityProvider(make_token(secret="other"), secret=JWT_SECRET)

        assert await provider.current_user() is None

    @pytest.mark.asyncio
    async def test_wrong_audience_is_rejected(self, make_token):
        provider = TokenIdentityProvider(make_token(audience="service"), secret=JWT_SECRET)

        assert await provider.current_user() is None

    @pytest.mark.asyncio
    async def test_unverified_mode_still_enforces_expiry(self, make_token):
        live = TokenIdentityProvider(make_token(secret="unknown"))
        expired = TokenIdentityProvider(make_token(expires_in=-60, secret="unknown"))

        assert (await live.current_user()).id == VIEWER_ID
        assert await expired.current_user() is None

    @pytest.mark.asyncio
    async def test_missing_subject_or_token(self, make_token):
        assert await TokenIdentityProvider(make_token(sub=None), secret=JWT_SECRET).current_user() is None
        assert await TokenIdentityProvider(None).current_user() is None
        assert await TokenIdentityProvider("not-a-jwt").current_user() is None


class TestSignOut:
    @pytest.mark.asyncio
    async def test_sign_out_clears_token_and_notifies_auth_service(self, make_token):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        token = make_token()
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = TokenIdentityProvider(
            token,
            secret=JWT_SECRET,
            logout_url="https://auth.test/logout",
            api_key="anon-key",
            http_client=http,
        )

        await provider.sign_out()

        assert provider.access_token is None
        assert await provider.current_user() is None
        assert seen[0].headers["authorization"] == f"Bearer {token}"
        assert seen[0].headers["apikey"] == "anon-key"

    @pytest.mark.asyncio
    async def test_remote_failure_still_clears_local_token(self, make_token):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = TokenIdentityProvider(
            make_token(), secret=JWT_SECRET, logout_url="https://auth.test/logout", http_client=http
        )

        with pytest.raises(IdentityError):
            await provider.sign_out()
        assert provider.access_token is None

    @pytest.mark.asyncio
    async def test_local_only_sign_out_makes_no_request(self, make_token, mocker):
        post = mocker.patch.object(httpx.AsyncClient, "post")
        provider = TokenIdentityProvider(make_token(), secret=JWT_SECRET)

        await provider.sign_out()

        post.assert_not_called()
        assert provider.access_token is None
