"""
Lynx.fm - command-line client for a Lynx.fm music server.

Authenticates against a Supabase identity provider, streams tracks from the
media server and plays them on a local audio device.
"""

__version__ = "0.2.0"

from .config import Config, ConfigError, load_config

__all__ = [
    "__version__",
    "Config",
    "ConfigError",
    "load_config",
]
