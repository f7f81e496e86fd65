"""
Audio output device lookup.

Enumerates PortAudio output devices via sounddevice and resolves the
configured device string ("default", an index, or a name) to one of them.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from lynx_fm.exceptions import PlaybackError

logger = logging.getLogger(__name__)


@dataclass
class OutputDevice:
    """An audio output device."""

    index: int
    name: str
    channels: int
    default_samplerate: float
    is_default: bool = False

    def describe(self) -> str:
        marker = " (default)" if self.is_default else ""
        return (
            f"[{self.index}] {self.name}{marker} - "
            f"{self.channels}ch, {int(self.default_samplerate)}Hz"
        )


def _import_sounddevice():
    """Lazy import of sounddevice (needs the PortAudio library at import time)."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise PlaybackError(
            f"Audio output is unavailable: {e}. "
            "Install sounddevice and the PortAudio library."
        )
    return sd


def list_output_devices() -> list[OutputDevice]:
    """List devices that can play audio."""
    sd = _import_sounddevice()
    default_output = sd.default.device[1]
    return [
        OutputDevice(
            index=i,
            name=dev["name"],
            channels=dev["max_output_channels"],
            default_samplerate=dev["default_samplerate"],
            is_default=(i == default_output),
        )
        for i, dev in enumerate(sd.query_devices())
        if dev["max_output_channels"] > 0
    ]


def format_device_list(devices: Optional[list[OutputDevice]] = None) -> str:
    """One line per device, for display."""
    if devices is None:
        devices = list_output_devices()
    return "\n".join(f"  {dev.describe()}" for dev in devices)


def resolve_device(spec: str = "default") -> OutputDevice:
    """
    Resolve a device setting to a device.

    Args:
        spec: "default", a device index, an exact device name, or a
            case-insensitive substring of one

    Raises:
        PlaybackError: If nothing matches
    """
    devices = list_output_devices()
    if not devices:
        raise PlaybackError("No audio output devices found on this system")

    wanted = spec.strip().lower()

    if wanted in ("", "default"):
        for dev in devices:
            if dev.is_default:
                return dev
        logger.warning("No default output device, using first available")
        return devices[0]

    if wanted.isdigit():
        for dev in devices:
            if dev.index == int(wanted):
                return dev
        raise PlaybackError(
            f"No audio output device at index {wanted}. "
            f"Available devices:\n{format_device_list(devices)}"
        )

    exact = [d for d in devices if d.name.lower() == wanted]
    partial = [d for d in devices if wanted in d.name.lower()]
    matches = exact or partial
    if not matches:
        raise PlaybackError(
            f"No audio device matching '{spec}'. "
            f"Available devices:\n{format_device_list(devices)}"
        )
    if len(matches) > 1:
        logger.warning(f"Multiple devices match '{spec}', using {matches[0].name}")
    return matches[0]
