"""Identity provider access: JWT verification and the GoTrue-style REST client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import jwt
import structlog

from okrsview.config.settings import get_settings
from okrsview.exceptions import IdentityProviderError

logger = structlog.get_logger(__name__)

_TIMEOUT = 10.0


@dataclass(frozen=True, slots=True)
class IdentityClaims:
    """Parsed and validated claims from an identity provider access token."""

    sub: str  # provider user ID
    email: str
    session_id: str


def verify_access_token(token: str) -> IdentityClaims:
    """Verify an HS256 access token and return its claims.

    Raises jwt.PyJWTError on invalid/expired tokens.
    """
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        options={"require": ["sub", "exp"]},
    )
    return IdentityClaims(
        sub=payload["sub"],
        email=payload.get("email", ""),
        # Tokens without a session id share one slot per user
        session_id=payload.get("session_id") or payload["sub"],
    )


class IdentityProviderClient:
    """Thin async client for the identity provider's auth endpoints."""

    def __init__(
        self,
        base_url: str,
        service_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self._service_key:
            headers["apikey"] = self._service_key
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=_TIMEOUT,
            transport=self._transport,
        )

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any],
        bearer: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {bearer}"} if bearer else {}
        try:
            async with self._client() as client:
                resp = await client.request(method, path, json=json, headers=headers)
                resp.raise_for_status()
                return resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("identity_provider_call_failed", path=path, error=str(exc))
            raise IdentityProviderError(f"Identity provider call failed: {path}") from exc

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        await self._call("POST", "/recover", json={"email": email, "redirect_to": redirect_to})

    async def update_password(self, access_token: str, password: str) -> None:
        await self._call("PUT", "/user", json={"password": password}, bearer=access_token)

    async def invite_user(self, email: str, data: dict[str, Any]) -> str:
        """Invite ``email`` and return the provider's user id."""
        body = await self._call(
            "POST", "/invite", json={"email": email, "data": data}, bearer=self._service_key
        )
        user_id = body.get("id")
        if not user_id:
            raise IdentityProviderError("Identity provider returned no user id")
        return str(user_id)
