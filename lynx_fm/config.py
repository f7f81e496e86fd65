"""
Lynx.fm settings.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Settings file (YAML)
4. Default values

Endpoint URLs and tokens are not settings; they live in the persisted
session (see lynx_fm.auth.store).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from lynx_fm.exceptions import LynxError

logger = logging.getLogger(__name__)


HOME_ENV_VAR = "LYNX_FM_HOME"
DEFAULT_HOME_DIRNAME = ".lynx-fm"
SETTINGS_FILENAME = "settings.yaml"
PREFETCH_DIRNAME = "tracks"

# Refreshing closer than this to expiry races against network latency
MIN_REFRESH_MARGIN = 5

# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

# Environment variable mappings
ENV_MAPPINGS = {
    "LYNX_FM_LOG_LEVEL": ("logging", "level"),
    "LYNX_FM_AUDIO_DEVICE": ("playback", "device"),
    "LYNX_FM_VOLUME": ("playback", "volume"),
    "LYNX_FM_PREFETCH_DIR": ("prefetch", "directory"),
    "LYNX_FM_PREFETCH_CONCURRENCY": ("prefetch", "concurrency"),
    "LYNX_FM_HTTP_TIMEOUT": ("http", "timeout"),
    "LYNX_FM_REFRESH_MARGIN": ("auth", "refresh_margin"),
}

_INT_ENV_VARS = {
    "LYNX_FM_VOLUME",
    "LYNX_FM_PREFETCH_CONCURRENCY",
    "LYNX_FM_REFRESH_MARGIN",
}
_FLOAT_ENV_VARS = {"LYNX_FM_HTTP_TIMEOUT"}


class ConfigError(LynxError):
    """Configuration error."""

    pass


class ConfigIncomplete(ConfigError):
    """A required URL or key is missing."""

    pass


def default_home() -> Path:
    """Per-user directory holding the session, settings and prefetched tracks."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_HOME_DIRNAME


@dataclass
class HttpConfig:
    """HTTP client timeouts (seconds)."""

    timeout: float = 30.0
    connect_timeout: float = 10.0


@dataclass
class AuthConfig:
    """Token lifecycle configuration."""

    refresh_margin: int = 60  # Treat tokens expiring within this many seconds as expired


@dataclass
class PlaybackConfig:
    """Local audio output configuration."""

    device: str = "default"
    blocksize: int = 2048
    volume: int = 100  # 0-100


@dataclass
class PrefetchConfig:
    """Prefetch download configuration."""

    directory: str = ""  # Empty means <home>/tracks
    concurrency: int = 4


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "warning"


@dataclass
class Config:
    """Complete lynx-fm settings."""

    home: Path = field(default_factory=default_home)
    http: HttpConfig = field(default_factory=HttpConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    prefetch: PrefetchConfig = field(default_factory=PrefetchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def session_path(self) -> Path:
        return self.home / "session.json"

    @property
    def legacy_session_path(self) -> Path:
        return self.home / "config.json"

    @property
    def settings_path(self) -> Path:
        return self.home / SETTINGS_FILENAME

    @property
    def prefetch_dir(self) -> Path:
        if self.prefetch.directory:
            return Path(self.prefetch.directory).expanduser()
        return self.home / PREFETCH_DIRNAME


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    if config.http.timeout <= 0:
        errors.append(f"Invalid HTTP timeout: {config.http.timeout}")
    if config.http.connect_timeout <= 0:
        errors.append(f"Invalid HTTP connect timeout: {config.http.connect_timeout}")

    if config.auth.refresh_margin < MIN_REFRESH_MARGIN:
        errors.append(
            f"Invalid refresh_margin: {config.auth.refresh_margin}. "
            f"Must be at least {MIN_REFRESH_MARGIN} seconds"
        )

    if not 0 <= config.playback.volume <= 100:
        errors.append(f"Invalid volume: {config.playback.volume}. Must be 0-100")
    if config.playback.blocksize <= 0:
        errors.append(f"Invalid blocksize: {config.playback.blocksize}")

    if config.prefetch.concurrency < 1:
        errors.append(f"Invalid prefetch concurrency: {config.prefetch.concurrency}")

    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load settings from a YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Settings dictionary (empty if the file does not exist)

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Settings file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML settings: {e}")
    except OSError as e:
        raise ConfigError(f"Error reading settings file {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return data


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load settings from environment variables.

    Returns:
        Settings dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is None:
            continue
        if env_var in _INT_ENV_VARS:
            try:
                value = int(value)
            except ValueError:
                logger.warning(f"Invalid integer for {env_var}: {value}")
                continue
        elif env_var in _FLOAT_ENV_VARS:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Invalid number for {env_var}: {value}")
                continue
        _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def dict_to_config(d: dict, home: Optional[Path] = None) -> Config:
    """Convert a dictionary to the Config dataclass. Unknown keys are ignored."""
    config = Config()
    if home is not None:
        config.home = home

    if "http" in d:
        h = d["http"]
        config.http.timeout = float(h.get("timeout", config.http.timeout))
        config.http.connect_timeout = float(h.get("connect_timeout", config.http.connect_timeout))

    if "auth" in d:
        config.auth.refresh_margin = int(d["auth"].get("refresh_margin", config.auth.refresh_margin))

    if "playback" in d:
        p = d["playback"]
        config.playback.device = str(p.get("device", config.playback.device))
        config.playback.blocksize = int(p.get("blocksize", config.playback.blocksize))
        config.playback.volume = int(p.get("volume", config.playback.volume))

    if "prefetch" in d:
        pf = d["prefetch"]
        config.prefetch.directory = str(pf.get("directory", config.prefetch.directory) or "")
        config.prefetch.concurrency = int(pf.get("concurrency", config.prefetch.concurrency))

    if "logging" in d:
        config.logging.level = str(d["logging"].get("level", config.logging.level))

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
    home: Optional[Path] = None,
) -> Config:
    """
    Load settings from all sources.

    Args:
        config_path: Path to YAML settings file (default: <home>/settings.yaml)
        cli_args: Dictionary of CLI arguments
        home: Per-user directory (default: $LYNX_FM_HOME or ~/.lynx-fm)

    Returns:
        Merged Config object

    Raises:
        ConfigError: If settings are invalid
    """
    home = home or default_home()
    configs = []

    # 1. Settings file (lowest priority of explicit configs)
    path = config_path or home / SETTINGS_FILENAME
    file_config = load_yaml_config(path)
    if file_config:
        configs.append(file_config)
        logger.debug(f"Loaded settings from {path}")

    # 2. Environment
    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded settings from environment variables")

    # 3. CLI (highest priority)
    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded settings from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    try:
        config = dict_to_config(merged, home=home)
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"Invalid settings value: {e}")

    validate_config(config)

    return config
