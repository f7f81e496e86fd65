"""
Identity provider client.

Talks to a Supabase (GoTrue) auth API: signup, email verification, password
login, token refresh and logout. Every call is single-shot; nothing here
retries.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

import aiohttp

from lynx_fm.exceptions import (
    AuthRejected,
    IdentityError,
    InvalidRefreshToken,
    TransportError,
)
from .session import Session, decode_jwt_claims

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Statuses GoTrue uses for a bad or revoked refresh token
REFRESH_REJECTED_STATUSES = (400, 401, 403)


@dataclass
class PendingVerification:
    """Signup accepted; a code was sent to the email address."""

    email: str


def _error_message(body: str, fallback: str) -> str:
    """Pull a human readable message out of a GoTrue error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip() or fallback
    if not isinstance(data, dict):
        return fallback
    for key in ("error_description", "msg", "message", "error"):
        value = data.get(key)
        if value:
            return str(value)
    return fallback


class IdentityClient:
    """GoTrue REST client bound to one provider URL and anonymous key."""

    def __init__(self, session: Session, timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize identity client.

        Args:
            session: Session carrying provider_url and provider_key
            timeout: Total request timeout in seconds

        Raises:
            ConfigIncomplete: If the provider URL or key is missing
        """
        session.require_provider()
        self._base = session
        self.base_url = session.provider_url.rstrip("/")
        self.api_key = session.provider_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._http: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "IdentityClient":
        """Async context manager entry."""
        self._http = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        """Async context manager exit."""
        if self._http:
            await self._http.close()
            self._http = None

    async def signup(self, email: str, password: str) -> Union[PendingVerification, Session]:
        """
        Create an account.

        Args:
            email: Account email
            password: Account password

        Returns:
            PendingVerification when the provider wants the emailed code
            confirmed first, or a Session if it auto-confirms the account
        """
        data = await self._post("signup", {"email": email, "password": password})
        if data.get("access_token"):
            logger.info("Signup auto-confirmed by provider")
            return self._session_from(data)
        logger.info("Signup accepted, verification pending")
        return PendingVerification(email=email)

    async def confirm_signup(self, email: str, code: str) -> Session:
        """Exchange the emailed verification code for a Session."""
        data = await self._post("verify", {"email": email, "token": code, "type": "signup"})
        return self._session_from(data)

    async def login(self, email: str, password: str) -> Session:
        """Exchange credentials for access and refresh tokens."""
        data = await self._post(
            "token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        logger.info("Logged in")
        return self._session_from(data)

    async def refresh(self, refresh_token: str) -> Session:
        """
        Exchange a refresh token for a new access token.

        Raises:
            InvalidRefreshToken: If the provider rejects the refresh token
        """
        try:
            data = await self._post(
                "token",
                {"refresh_token": refresh_token},
                params={"grant_type": "refresh_token"},
            )
        except (AuthRejected, IdentityError) as e:
            if e.status in REFRESH_REJECTED_STATUSES:
                raise InvalidRefreshToken(f"Refresh token rejected: {e}", e.status)
            raise
        logger.debug("Access token refreshed")
        return self._session_from(data, previous_refresh_token=refresh_token)

    async def logout(self, access_token: str) -> None:
        """Revoke the session at the provider."""
        await self._post(
            "logout",
            None,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        logger.info("Logged out at provider")

    def _session_from(
        self, data: dict[str, Any], previous_refresh_token: Optional[str] = None
    ) -> Session:
        """Build a Session from a token response."""
        access_token = data.get("access_token")
        if not access_token:
            raise IdentityError("Provider response did not include an access token")

        refresh_token = data.get("refresh_token") or previous_refresh_token

        expires_at: Optional[float] = None
        if data.get("expires_in") is not None:
            expires_at = time.time() + float(data["expires_in"])
        elif data.get("expires_at") is not None:
            expires_at = float(data["expires_at"])
        else:
            exp = decode_jwt_claims(access_token).get("exp")
            if isinstance(exp, (int, float)):
                expires_at = float(exp)

        return self._base.with_tokens(str(access_token), refresh_token, expires_at)

    async def _post(
        self,
        endpoint: str,
        payload: Optional[dict[str, Any]],
        params: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """POST to /auth/v1/<endpoint> and return the decoded JSON body."""
        url = f"{self.base_url}/auth/v1/{endpoint}"
        request_headers = {"apikey": self.api_key}
        if headers:
            request_headers.update(headers)

        session = self._http
        close_session = False
        if session is None:
            session = aiohttp.ClientSession(timeout=self._timeout)
            close_session = True

        try:
            async with session.post(
                url, json=payload, params=params, headers=request_headers
            ) as resp:
                body = await resp.text(errors="replace")
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            raise TransportError(f"Could not reach identity provider: {reason}", url)
        finally:
            if close_session:
                await session.close()

        logger.debug(f"POST {url} -> {status}")

        if status in (401, 403):
            raise AuthRejected(
                _error_message(body, f"HTTP {status}"), status, body, service="identity"
            )
        if not 200 <= status < 300:
            raise IdentityError(_error_message(body, f"HTTP {status}"), status)

        if not body.strip():
            return {}
        try:
            data = json.loads(body)
        except ValueError:
            raise IdentityError(f"Provider returned invalid JSON for {endpoint}", status)
        return data if isinstance(data, dict) else {}
