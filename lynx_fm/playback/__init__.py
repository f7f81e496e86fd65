"""
Local audio playback.

Device lookup, the streaming source the decoder reads from, and the player
that ties them to sounddevice/soundfile.
"""

from .device import OutputDevice, format_device_list, list_output_devices, resolve_device
from .output import AudioOutput
from .player import LocalPlayer
from .source import StreamingSource

__all__ = [
    "AudioOutput",
    "LocalPlayer",
    "OutputDevice",
    "StreamingSource",
    "format_device_list",
    "list_output_devices",
    "resolve_device",
]
