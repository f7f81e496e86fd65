"""
Streaming source for the audio decoder.

A seekable, in-memory file that fills up while the track downloads. The
network task feeds chunks from the event loop; the decoder thread reads
from it and blocks until the bytes it asks for have arrived.
"""

import io
import threading
from typing import Optional


class StreamingSource:
    """
    Thread-safe growing buffer with a file-like read/seek/tell interface.

    Reads block until enough data arrived, the feed finished, or the source
    was failed or closed. After a failure reads return b"" (end of file) and
    the failure is available through raise_if_failed(); decoders calling
    back into Python cannot propagate exceptions reliably.
    """

    def __init__(self, expected_length: Optional[int] = None):
        """
        Initialize the source.

        Args:
            expected_length: Total size in bytes if known (Content-Length),
                lets seeks relative to the end succeed before the download
                finishes
        """
        self._data = bytearray()
        self._pos = 0
        self._expected_length = expected_length
        self._finished = False
        self._closed = False
        self._error: Optional[BaseException] = None
        self._cond = threading.Condition()

    # Producer side

    def feed(self, chunk: bytes) -> None:
        """Append downloaded bytes."""
        with self._cond:
            if self._finished or self._closed:
                raise ValueError("Cannot feed a finished or closed source")
            self._data.extend(chunk)
            self._cond.notify_all()

    def finish(self) -> None:
        """Mark the download complete."""
        with self._cond:
            self._finished = True
            self._cond.notify_all()

    def fail(self, error: BaseException) -> None:
        """Abort the download; readers see end of file."""
        with self._cond:
            if self._error is None:
                self._error = error
            self._finished = True
            self._cond.notify_all()

    def close(self) -> None:
        """Release blocked readers."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def error(self) -> Optional[BaseException]:
        with self._cond:
            return self._error

    @property
    def received(self) -> int:
        """Bytes received so far."""
        with self._cond:
            return len(self._data)

    def raise_if_failed(self) -> None:
        error = self.error
        if error is not None:
            raise error

    # Consumer side (file-like)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        with self._cond:
            return self._pos

    def read(self, size: Optional[int] = -1) -> bytes:
        with self._cond:
            if size is None or size < 0:
                self._wait(lambda: self._finished)
                end = len(self._data)
            else:
                end = self._pos + size
                self._wait(lambda: len(self._data) >= end or self._finished)
            if self._error is not None or self._closed:
                return b""
            chunk = bytes(self._data[self._pos:end])
            self._pos += len(chunk)
            return chunk

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        with self._cond:
            if whence == io.SEEK_SET:
                position = offset
            elif whence == io.SEEK_CUR:
                position = self._pos + offset
            elif whence == io.SEEK_END:
                position = self._length() + offset
            else:
                raise ValueError(f"Invalid whence: {whence}")
            if position < 0:
                raise ValueError(f"Negative seek position: {position}")
            self._pos = position
            return position

    def _length(self) -> int:
        """Total length; waits for the end of the feed when it is unknown."""
        if self._expected_length is not None and not self._finished:
            return self._expected_length
        self._wait(lambda: self._finished)
        return len(self._data)

    def _wait(self, ready) -> None:
        """Block (holding the condition) until ready() or the source is done."""
        while not ready() and not self._closed and self._error is None:
            self._cond.wait()
