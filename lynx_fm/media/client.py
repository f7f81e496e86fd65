"""
Media server client.

Fetches track metadata and audio from the Lynx.fm media server. Every
authenticated request asks the token provider for a token right before it is
sent, so a token refreshed a moment ago is always the one used.

Authentication failures are reported with the full request context rather
than retried with other credentials: the media server and the identity
provider are separate services and a 401 here usually means their contracts
disagree.
"""

import asyncio
import logging
import os
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional
from urllib.parse import quote

import aiohttp

from lynx_fm.auth.session import Session
from lynx_fm.exceptions import (
    LynxError,
    MediaAuthRejected,
    MediaServerError,
    StorageError,
    TransportError,
)
from .types import HealthStatus, PrefetchOutcome, TrackMetadata, TrackStream

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024  # 64KB chunks
DEFAULT_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_PREFETCH_CONCURRENCY = 4
PARTIAL_SUFFIX = ".part"

TokenProvider = Callable[[], Awaitable[str]]


def prefetch_path(directory: Path, track_id: str) -> Path:
    """Local file a prefetched track is stored under."""
    name = quote(track_id, safe="-_").replace(".", "%2E")
    return Path(directory) / name


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of request headers with credentials shortened for display."""
    redacted = {}
    for name, value in headers.items():
        if name.lower() == "authorization" and " " in value:
            scheme, credential = value.split(" ", 1)
            shown = credential[:8] + "..." if len(credential) > 8 else credential
            redacted[name] = f"{scheme} {shown} ({len(credential)} chars)"
        else:
            redacted[name] = value
    return redacted


def _transport_error(e: BaseException, url: str, action: str) -> TransportError:
    reason = str(e) or type(e).__name__
    return TransportError(f"{action}: {reason}", url)


class MediaClient:
    """HTTP client for the media server."""

    def __init__(
        self,
        session: Session,
        token_provider: TokenProvider,
        timeout: float = DEFAULT_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        chunk_size: int = STREAM_CHUNK_SIZE,
    ):
        """
        Initialize media client.

        Args:
            session: Session carrying server_url
            token_provider: Coroutine function returning the access token
                (normally SessionGuard.authorized_token)
            timeout: Total timeout for metadata requests, and per-read
                timeout for audio downloads (seconds)
            connect_timeout: Connection timeout (seconds)
            chunk_size: Bytes per streamed chunk

        Raises:
            ConfigIncomplete: If the server URL is missing
        """
        session.require_server()
        self.base_url = session.server_url.rstrip("/")
        self._token_provider = token_provider
        self._chunk_size = chunk_size
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=connect_timeout)
        # No total timeout for audio bodies, only for each read
        self._stream_timeout = aiohttp.ClientTimeout(
            total=None, connect=connect_timeout, sock_read=timeout
        )
        self._http: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "MediaClient":
        """Async context manager entry."""
        self._http = aiohttp.ClientSession()
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

    async def health(self) -> HealthStatus:
        """
        Probe the server's /health endpoint without credentials.

        Raises:
            TransportError: If the server cannot be reached
            MediaServerError: If the server answers with a non-2xx status
        """
        url = f"{self.base_url}/health"
        async with self._client() as http:
            try:
                async with http.get(url, timeout=self._timeout) as resp:
                    status = resp.status
                    body = await resp.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise _transport_error(e, url, "Health check failed")

        logger.debug(f"GET {url} -> {status}")
        if not 200 <= status < 300:
            raise MediaServerError(f"Server is unhealthy (HTTP {status})", status, body)
        return HealthStatus(status=status, body=body)

    async def random_track(self) -> TrackMetadata:
        """
        Ask the server for a random track.

        Raises:
            LoginRequired: If no usable token is available
            MediaAuthRejected: If the server rejects the token
            MediaServerError: For other failures or an unparseable body
            TransportError: If the server cannot be reached
        """
        token = await self._token_provider()
        url = f"{self.base_url}/random"
        headers = self._auth_headers(token)

        async with self._client() as http:
            try:
                async with http.get(url, headers=headers, timeout=self._timeout) as resp:
                    await self._check_response(resp, url, headers)
                    body = await resp.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise _transport_error(e, url, "Failed to get random track")

        track = TrackMetadata.from_response(body)
        logger.info(f"Random track: {track.track_id}")
        return track

    @asynccontextmanager
    async def stream_track(self, track_id: str) -> AsyncIterator[TrackStream]:
        """
        Open the audio stream for a track.

        Usage:
            async with media.stream_track("abc") as stream:
                async for chunk in stream.iter_chunks():
                    ...

        The response status is checked before the stream is yielded. The
        connection is released when the block exits, including on
        cancellation.
        """
        token = await self._token_provider()
        url = self._track_url(track_id)
        headers = self._auth_headers(token)

        async with AsyncExitStack() as stack:
            http = await stack.enter_async_context(self._client())
            try:
                resp = await stack.enter_async_context(
                    http.get(url, headers=headers, timeout=self._stream_timeout)
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise _transport_error(e, url, "Failed to start streaming track")

            await self._check_response(resp, url, headers)
            logger.info(f"Streaming track {track_id} ({resp.content_length or '?'} bytes)")

            async def iter_chunks() -> AsyncIterator[bytes]:
                try:
                    async for chunk in resp.content.iter_chunked(self._chunk_size):
                        yield chunk
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    raise _transport_error(e, url, "Stream interrupted")

            yield TrackStream(
                track_id=track_id,
                content_type=resp.content_type,
                content_length=resp.content_length,
                iter_chunks=iter_chunks,
            )

    async def prefetch(
        self,
        track_ids: Iterable[str],
        directory: Path,
        concurrency: int = DEFAULT_PREFETCH_CONCURRENCY,
    ) -> dict[str, PrefetchOutcome]:
        """
        Download tracks to local storage.

        The token is resolved once for the whole batch. Each track is
        downloaded independently; a failure is recorded in its outcome and
        does not stop the others.

        Args:
            track_ids: Track references (duplicates are fetched once)
            directory: Destination directory
            concurrency: Maximum simultaneous downloads

        Returns:
            Outcome per track, in first-seen order

        Raises:
            LoginRequired: If no usable token is available
            StorageError: If the destination directory cannot be created
        """
        unique = list(dict.fromkeys(track_ids))
        if not unique:
            return {}

        token = await self._token_provider()
        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create prefetch directory: {e.strerror or e}", directory)

        semaphore = asyncio.Semaphore(max(1, concurrency))

        async with self._client() as http:

            async def fetch_one(track_id: str) -> PrefetchOutcome:
                async with semaphore:
                    try:
                        path, size = await self._download(http, track_id, token, directory)
                    except LynxError as e:
                        logger.warning(f"Prefetch failed for {track_id}: {e}")
                        return PrefetchOutcome(track_id=track_id, ok=False, error=e)
                logger.info(f"Prefetched {track_id} ({size} bytes)")
                return PrefetchOutcome(track_id=track_id, ok=True, path=path, bytes_written=size)

            outcomes = await asyncio.gather(*(fetch_one(t) for t in unique))

        return {outcome.track_id: outcome for outcome in outcomes}

    async def _download(
        self,
        http: aiohttp.ClientSession,
        track_id: str,
        token: str,
        directory: Path,
    ) -> tuple[Path, int]:
        """Download one track into directory via a partial file."""
        url = self._track_url(track_id)
        headers = self._auth_headers(token)
        target = prefetch_path(directory, track_id)
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        written = 0

        try:
            async with http.get(url, headers=headers, timeout=self._stream_timeout) as resp:
                await self._check_response(resp, url, headers)
                try:
                    with open(partial, "wb") as f:
                        async for chunk in resp.content.iter_chunked(self._chunk_size):
                            f.write(chunk)
                            written += len(chunk)
                    os.replace(partial, target)
                except OSError as e:
                    raise StorageError(
                        f"Failed to write track {track_id}: {e.strerror or e}", partial
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise _transport_error(e, url, f"Failed to download track {track_id}")
        finally:
            if partial.exists():
                try:
                    partial.unlink()
                except OSError:
                    logger.debug(f"Could not remove partial file {partial}")

        return target, written

    async def _check_response(
        self,
        resp: aiohttp.ClientResponse,
        url: str,
        headers: dict[str, str],
    ) -> None:
        """Raise the matching error for a non-2xx response."""
        status = resp.status
        logger.debug(f"{resp.method} {url} -> {status}")
        if 200 <= status < 300:
            return

        try:
            body = await resp.text(errors="replace")
        except (aiohttp.ClientError, asyncio.TimeoutError):
            body = ""

        if status in (401, 403):
            raise MediaAuthRejected(
                f"Media server rejected the request (HTTP {status})",
                status,
                body=body,
                url=url,
                headers_sent=redact_headers(headers),
            )
        if status == 404:
            raise MediaServerError(f"Not found on media server: {url}", status, body)
        raise MediaServerError(f"Media server error (HTTP {status})", status, body)

    def _track_url(self, track_id: str) -> str:
        return f"{self.base_url}/tracks/{quote(track_id, safe='')}"

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Shared session when used as a context manager, else a short-lived one."""
        if self._http is not None:
            yield self._http
            return
        async with aiohttp.ClientSession() as session:
            yield session
