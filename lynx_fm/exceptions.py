"""
Lynx.fm error hierarchy.

Every failure the client can report derives from LynxError so the CLI can
map it to a message and exit code in one place.
"""

from pathlib import Path
from typing import Optional, Union


class LynxError(Exception):
    """Base class for lynx-fm errors."""

    pass


class TransportError(LynxError):
    """DNS, connect, timeout or disconnect failure talking to a remote service."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class AuthRejected(LynxError):
    """A service answered 401/403."""

    def __init__(self, message: str, status: int, body: str = "", service: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body
        self.service = service


class MediaAuthRejected(AuthRejected):
    """
    The media server rejected an authenticated request.

    Carries the headers that were sent so contract mismatches between the
    media server and the identity provider can be diagnosed.
    """

    def __init__(
        self,
        message: str,
        status: int,
        body: str = "",
        url: str = "",
        headers_sent: Optional[dict[str, str]] = None,
    ):
        super().__init__(message, status, body, service="media")
        self.url = url
        self.headers_sent = headers_sent or {}

    def diagnostics(self) -> str:
        """Multi-line report of the rejected request."""
        lines = [
            f"Request: {self.url}",
            f"Status: {self.status}",
            "Headers sent:",
        ]
        for name, value in self.headers_sent.items():
            lines.append(f"  {name}: {value}")
        lines.append(f"Response body: {self.body or '<empty>'}")
        return "\n".join(lines)


class InvalidRefreshToken(LynxError):
    """The identity provider refused the refresh token."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class LoginRequired(LynxError):
    """No usable access token; the user has to log in again."""

    pass


class IdentityError(LynxError):
    """Identity provider error other than an auth rejection."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class MediaServerError(LynxError):
    """Media server error other than an auth rejection."""

    def __init__(self, message: str, status: int = 0, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class StorageError(LynxError):
    """Local file read/write failure."""

    def __init__(self, message: str, path: Union[str, Path, None] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        base = super().__str__()
        if self.path is not None:
            return f"{base} ({self.path})"
        return base


class PlaybackError(LynxError):
    """Audio device or decoding failure."""

    pass
