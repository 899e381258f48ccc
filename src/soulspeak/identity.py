"""Identity provider collaborator.

The provider answers a single question for the feed core: who is the viewer?
`TokenIdentityProvider` reads the viewer from a bearer access token issued by
the auth service. When a signing secret is configured the token is fully
verified; otherwise only its claims are read, with expiry still enforced.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
from jose import JWTError, jwt

from soulspeak.core.errors import IdentityError
from soulspeak.core.settings import Settings, settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated viewer."""

    id: str
    email: str | None = None

    @property
    def handle(self) -> str | None:
        """Local part of the email address, used as a fallback display name."""
        if not self.email:
            return None
        return self.email.split("@", 1)[0]


@runtime_checkable
class IdentityProvider(Protocol):
    async def current_user(self) -> CurrentUser | None:
        ...

    async def sign_out(self) -> None:
        ...


class TokenIdentityProvider:
    """Identity provider backed by a JWT access token."""

    def __init__(
        self,
        access_token: str | None,
        *,
        secret: str | None = None,
        algorithm: str = "HS256",
        audience: str | None = "authenticated",
        logout_url: str | None = None,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = access_token
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience
        self._logout_url = logout_url
        self._api_key = api_key
        self._http_client = http_client

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> TokenIdentityProvider:
        cfg = source or settings
        return cls(
            cfg.access_token,
            secret=cfg.jwt_secret,
            algorithm=cfg.jwt_algorithm,
            audience=cfg.jwt_audience,
            logout_url=cfg.auth_logout_url,
            api_key=cfg.store_api_key,
        )

    @property
    def access_token(self) -> str | None:
        return self._token

    def _claims(self, token: str) -> dict[str, Any]:
        if self._secret:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )

        claims = jwt.get_unverified_claims(token)
        exp = claims.get("exp")
        if exp is not None and float(exp) <= time.time():
            raise JWTError("Signature has expired")
        return claims

    async def current_user(self) -> CurrentUser | None:
        """Return the viewer, or None when signed out or the token is unusable."""
        if not self._token:
            return None
        try:
            claims = self._claims(self._token)
        except JWTError as exc:
            logger.warning("Ignoring unusable access token: %s", exc)
            return None

        subject = claims.get("sub")
        if not subject:
            logger.warning("Access token has no subject claim")
            return None
        return CurrentUser(id=str(subject), email=claims.get("email"))

    async def sign_out(self) -> None:
        """Forget the token locally and notify the auth service when configured."""
        token, self._token = self._token, None
        if not (token and self._logout_url):
            return

        headers = {"Authorization": f"Bearer {token}"}
        if self._api_key:
            headers["apikey"] = self._api_key

        client = self._http_client or httpx.AsyncClient()
        try:
            response = await client.post(self._logout_url, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Remote sign-out failed; local session already cleared: %s", exc)
            raise IdentityError("Signed out locally, but the auth service could not be reached") from exc
        finally:
            if self._http_client is None:
                await client.aclose()
