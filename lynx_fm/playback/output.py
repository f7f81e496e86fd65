"""
Audio output stream wrapper.

Blocking sounddevice.OutputStream: write() returns once PortAudio has
accepted the samples, which paces the decoder to the device.
"""

import logging
from typing import Any, Optional

import numpy as np

from lynx_fm.exceptions import PlaybackError
from .device import _import_sounddevice

logger = logging.getLogger(__name__)


class AudioOutput:
    """Opens, feeds and releases one PortAudio output stream."""

    def __init__(self, device_index: Optional[int] = None, blocksize: int = 2048, volume: int = 100):
        self._device_index = device_index
        self._blocksize = blocksize
        self._volume = max(0.0, min(1.0, volume / 100.0))
        self._stream = None  # sd.OutputStream

    def open(self, sample_rate: int, channels: int) -> None:
        """Open and start the stream."""
        sd = _import_sounddevice()
        self.close()
        try:
            self._stream = sd.OutputStream(
                device=self._device_index,
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
                blocksize=self._blocksize,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise PlaybackError(f"Failed to open audio output: {e}")
        logger.debug(
            f"Audio output opened: {sample_rate}Hz, {channels}ch, blocksize={self._blocksize}"
        )

    def write(self, frames: np.ndarray) -> None:
        """Play frames of shape (n, channels); blocks until the device takes them."""
        if self._stream is None:
            raise PlaybackError("Audio output is not open")
        if self._volume < 1.0:
            frames = frames * self._volume
        underflowed = self._stream.write(np.ascontiguousarray(frames, dtype=np.float32))
        if underflowed:
            logger.debug("Audio output underflow")

    def drain(self) -> None:
        """Wait until queued audio has played."""
        if self._stream is not None:
            self._stream.stop()

    def close(self) -> None:
        """Abort playback and release the device."""
        if self._stream is not None:
            try:
                self._stream.abort()
                self._stream.close()
            except Exception as e:
                logger.warning(f"Error closing audio output: {e}")
            self._stream = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def set_volume(self, level: int) -> None:
        """Set volume level (0-100)."""
        self._volume = max(0.0, min(1.0, level / 100.0))

    def get_volume(self) -> int:
        return int(self._volume * 100)

    def __enter__(self) -> "AudioOutput":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
