"""
Session state: tokens plus the endpoints they are valid for.
"""

import time
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Optional

import jwt

from lynx_fm.config import ConfigIncomplete

# Key names written by earlier releases of the client
LEGACY_KEYS = {
    "auth_token": "access_token",
    "token_expiry": "expires_at",
    "supabase_url": "provider_url",
    "supabase_anon_key": "provider_key",
    "music_server_url": "server_url",
}


def decode_jwt_claims(token: str) -> dict[str, Any]:
    """
    Decode the payload of a JWT without verifying its signature.

    Returns an empty dict for anything that is not a decodable JWT.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return {}
    return claims if isinstance(claims, dict) else {}


@dataclass
class Session:
    """Locally persisted authentication and endpoint state."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None  # Epoch seconds; None when the provider did not say
    server_url: str = ""
    provider_url: str = ""
    provider_key: str = ""

    @property
    def is_authenticated(self) -> bool:
        """True when an access token is held (it may still be stale)."""
        return bool(self.access_token)

    def is_expired(self, margin: float = 0, now: Optional[float] = None) -> bool:
        """
        Check if the access token is expired or expires within margin seconds.

        Unknown expiry is never considered expired.
        """
        if self.expires_at is None:
            return False
        if now is None:
            now = time.time()
        return now + margin >= self.expires_at

    def with_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[float],
    ) -> "Session":
        """Copy with new tokens, keeping the endpoint configuration."""
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    def without_tokens(self) -> "Session":
        """Copy with all token fields cleared."""
        return replace(self, access_token=None, refresh_token=None, expires_at=None)

    def require_provider(self) -> None:
        """Raise ConfigIncomplete unless the identity provider is configured."""
        missing = []
        if not self.provider_url:
            missing.append("provider URL (--supabase-url)")
        if not self.provider_key:
            missing.append("provider key (--supabase-key)")
        if missing:
            raise ConfigIncomplete(
                "Identity provider not configured: missing " + ", ".join(missing)
                + ". Run 'lynx-fm config'."
            )

    def require_server(self) -> None:
        """Raise ConfigIncomplete unless the media server is configured."""
        if not self.server_url:
            raise ConfigIncomplete(
                "Media server not configured: missing server URL (--server-url). "
                "Run 'lynx-fm config'."
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """
        Build a Session from persisted data.

        Unknown keys are ignored and missing keys take defaults, so files
        written by older or newer clients still load.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for legacy, key in LEGACY_KEYS.items():
            if legacy in data:
                values[key] = data[legacy]
        for key in known:
            if key in data:
                values[key] = data[key]

        for key in ("server_url", "provider_url", "provider_key"):
            if values.get(key) is None:
                values.pop(key, None)
            else:
                values[key] = str(values[key])

        expires_at = values.get("expires_at")
        if expires_at is not None:
            try:
                values["expires_at"] = float(expires_at)
            except (TypeError, ValueError):
                values["expires_at"] = None

        return cls(**values)
