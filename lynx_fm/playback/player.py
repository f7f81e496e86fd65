"""
Local audio player.

Decodes audio with soundfile in a worker thread and plays it through
sounddevice. For network streams the event loop keeps feeding downloaded
chunks into a StreamingSource while the decoder is already playing the
beginning of the track.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from lynx_fm.exceptions import PlaybackError
from lynx_fm.media.types import TrackStream
from .device import resolve_device
from .output import AudioOutput
from .source import StreamingSource

logger = logging.getLogger(__name__)

DECODE_BLOCK_FRAMES = 4096
THREAD_JOIN_TIMEOUT = 5.0  # Seconds to wait for the decoder to release the device


def _import_soundfile():
    """Lazy import of soundfile (needs libsndfile at import time)."""
    try:
        import soundfile as sf
    except (ImportError, OSError) as e:
        raise PlaybackError(f"Audio decoding is unavailable: {e}. Install soundfile.")
    return sf


@dataclass
class _DecodeJob:
    """State shared between the event loop and the decoder thread."""

    open_audio: Callable[[Any], Any]  # soundfile module -> SoundFile
    source: Optional[StreamingSource] = None
    stop: threading.Event = field(default_factory=threading.Event)
    done: threading.Event = field(default_factory=threading.Event)
    error: Optional[Exception] = None
    frames_played: int = 0


class LocalPlayer:
    """Plays tracks on a local output device."""

    def __init__(self, device: str = "default", blocksize: int = 2048, volume: int = 100):
        """
        Initialize the player.

        Args:
            device: Output device setting ("default", index or name)
            blocksize: PortAudio block size in frames
            volume: Output volume (0-100)
        """
        self._device = device
        self._blocksize = blocksize
        self._volume = volume

    async def play_stream(self, stream: TrackStream) -> None:
        """
        Play a track while it downloads.

        Returns when the track finished playing.

        Raises:
            TransportError: If the download breaks off (playback stops)
            PlaybackError: If the device cannot be opened or the audio
                cannot be decoded
        """
        source = StreamingSource(stream.content_length)
        job = _DecodeJob(open_audio=lambda sf: sf.SoundFile(source), source=source)
        thread = self._start(job)
        loop = asyncio.get_running_loop()

        try:
            try:
                async for chunk in stream.iter_chunks():
                    source.feed(chunk)
                    if job.done.is_set():
                        break  # Decoder gave up; stop downloading
            except BaseException as e:
                job.stop.set()
                source.fail(e)
                raise
            source.finish()
            logger.debug(f"Download of {stream.track_id} complete ({source.received} bytes)")
            await loop.run_in_executor(None, job.done.wait)
        finally:
            self._shutdown(job, thread)

        if job.error is not None:
            raise job.error
        logger.info(f"Finished playing {stream.track_id} ({job.frames_played} frames)")

    async def play_file(self, path: Path) -> None:
        """Play a local (prefetched) audio file."""
        job = _DecodeJob(open_audio=lambda sf: sf.SoundFile(str(path)))
        thread = self._start(job)
        try:
            await asyncio.get_running_loop().run_in_executor(None, job.done.wait)
        finally:
            self._shutdown(job, thread)

        if job.error is not None:
            raise job.error
        logger.info(f"Finished playing {path} ({job.frames_played} frames)")

    def _start(self, job: _DecodeJob) -> threading.Thread:
        """Resolve the device and start the decoder thread."""
        device = resolve_device(self._device)
        logger.debug(f"Audio output device: {device.name}")
        output = AudioOutput(device.index, blocksize=self._blocksize, volume=self._volume)
        thread = threading.Thread(
            target=self._decode, args=(job, output), name="lynx-fm-decoder", daemon=True
        )
        thread.start()
        return thread

    def _shutdown(self, job: _DecodeJob, thread: threading.Thread) -> None:
        """Stop the decoder if it is still running and wait for it to let go of the device."""
        if not job.done.is_set():
            job.stop.set()
            if job.source is not None:
                job.source.close()
        thread.join(timeout=THREAD_JOIN_TIMEOUT)
        if thread.is_alive():
            logger.warning("Decoder thread did not stop in time")

    def _decode(self, job: _DecodeJob, output: AudioOutput) -> None:
        """Decoder thread body; errors are handed back through job.error."""
        try:
            with output:
                self._decode_into(job, output)
        except Exception as e:
            job.error = e
        finally:
            job.done.set()

    def _decode_into(self, job: _DecodeJob, output: AudioOutput) -> None:
        sf = _import_soundfile()
        try:
            audio = job.open_audio(sf)
        except RuntimeError as e:
            if job.stop.is_set():
                return
            if job.source is not None:
                job.source.raise_if_failed()
            raise PlaybackError(f"Unsupported or corrupt audio: {e}")

        with audio:
            output.open(audio.samplerate, audio.channels)
            logger.debug(f"Decoding {audio.format} at {audio.samplerate}Hz, {audio.channels}ch")
            for block in audio.blocks(
                blocksize=DECODE_BLOCK_FRAMES, dtype="float32", always_2d=True
            ):
                if job.stop.is_set():
                    return
                output.write(block)
                job.frames_played += len(block)

        if job.stop.is_set():
            return
        if job.source is not None:
            job.source.raise_if_failed()
        output.drain()
