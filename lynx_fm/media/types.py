"""
Media server types.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

from lynx_fm.exceptions import LynxError, MediaServerError


@dataclass
class HealthStatus:
    """Result of a successful /health check."""

    status: int
    body: str = ""


def _duration_ms(data: dict[str, Any]) -> int:
    """Track length from `duration_ms`, or `duration` in seconds; 0 when missing or malformed."""
    try:
        if data.get("duration_ms") is not None:
            return int(float(data["duration_ms"]))
        if data.get("duration") is not None:
            return int(float(data["duration"]) * 1000)
    except (TypeError, ValueError, OverflowError):
        pass
    return 0


@dataclass
class TrackMetadata:
    """Track information returned by the media server."""

    track_id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    duration_ms: int = 0

    @classmethod
    def from_response(cls, body: str) -> "TrackMetadata":
        """
        Parse a /random response body.

        Accepts a JSON object with ``track_id`` or ``id`` (plus optional
        descriptive fields), or a plain-text body holding just the id.

        Raises:
            MediaServerError: If no track id can be found
        """
        try:
            data: Any = json.loads(body)
        except ValueError:
            track_id = body.strip()
            if not track_id:
                raise MediaServerError("Empty response from media server", body=body)
            return cls(track_id=track_id)

        if not isinstance(data, dict):
            if isinstance(data, (str, int)) and str(data).strip():
                return cls(track_id=str(data).strip())
            raise MediaServerError("No track ID found in response", body=body)

        track_id = data.get("track_id") or data.get("id")
        if track_id is None or not str(track_id).strip():
            raise MediaServerError("No track ID found in response", body=body)

        return cls(
            track_id=str(track_id).strip(),
            title=str(data.get("title") or ""),
            artist=str(data.get("artist") or ""),
            album=str(data.get("album") or ""),
            duration_ms=_duration_ms(data),
        )

    def display_name(self) -> str:
        if self.title and self.artist:
            return f"{self.artist} - {self.title}"
        return self.title or self.track_id


@dataclass
class TrackStream:
    """An open audio response whose body is read lazily."""

    track_id: str
    content_type: str
    content_length: Optional[int]
    iter_chunks: Callable[[], AsyncIterator[bytes]]


@dataclass
class PrefetchOutcome:
    """Result of prefetching one track."""

    track_id: str
    ok: bool
    path: Optional[Path] = None
    bytes_written: int = 0
    error: Optional[LynxError] = None
