"""Configuration management using XDG Base Directory Specification.

Settings live in ``$XDG_CONFIG_HOME/streamplay/config.ini``. A default file
is written on first run; ``STREAMPLAY_API_URL`` and ``STREAMPLAY_AUTH_TOKEN``
override the remote queue settings without touching the file.
"""

import configparser
import os
from pathlib import Path
from typing import Optional

from streamplay.exceptions import ConfigurationError


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/streamplay/ (or XDG_CONFIG_HOME)
    - Data: ~/.local/share/streamplay/ (or XDG_DATA_HOME)
    """

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        """
        Initialize configuration manager.

        Sets up XDG Base Directory paths and loads or creates configuration.
        """
        if Config._instance is not None:
            return

        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        self.app_name = 'streamplay'
        self.config_dir = self.config_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()

        self._load_config()

        Config._instance = self

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        if self.config_file.exists():
            self.config.read(self.config_file)
        else:
            self._create_default_config()

    def _create_default_config(self) -> None:
        """Create default configuration with sensible defaults."""
        self.config['playback'] = {
            'restart_threshold_ms': '3000',
            'volume': '1.0',
        }

        self.config['remote'] = {
            'enabled': 'true',
            'base_url': 'http://localhost:8080',
            'timeout': '10',
            'auth_token': '',
            'max_workers': '2',
        }

        self.save()

    def save(self) -> None:
        """Save configuration to file."""
        try:
            with open(self.config_file, 'w') as f:
                self.config.write(f)
        except OSError as e:
            from streamplay.logging import get_logger
            logger = get_logger(__name__)
            logger.error("Failed to save config: %s", e, exc_info=True)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """
        Set a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            value: Value to set (will be converted to string)
        """
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, str(value))
        self.save()

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    # Convenience properties
    @property
    def restart_threshold_ms(self) -> int:
        """Position below which prev() skips back instead of restarting."""
        value = self.get_int('playback', 'restart_threshold_ms', 3000)
        if value < 0:
            raise ConfigurationError("[playback] restart_threshold_ms must be >= 0")
        return value

    @property
    def initial_volume(self) -> float:
        """Volume applied when a session starts, clamped to [0, 1]."""
        return max(0.0, min(1.0, self.get_float('playback', 'volume', 1.0)))

    @property
    def remote_enabled(self) -> bool:
        return self.get_bool('remote', 'enabled', True)

    @property
    def remote_base_url(self) -> str:
        """Backend base URL, without trailing slash."""
        url = os.getenv('STREAMPLAY_API_URL') or self.get('remote', 'base_url', 'http://localhost:8080')
        return url.rstrip('/')

    @property
    def remote_timeout(self) -> float:
        """Bound on every backend call, in seconds."""
        value = self.get_float('remote', 'timeout', 10.0)
        if value <= 0:
            raise ConfigurationError("[remote] timeout must be > 0")
        return value

    @property
    def remote_auth_token(self) -> Optional[str]:
        return os.getenv('STREAMPLAY_AUTH_TOKEN') or self.get('remote', 'auth_token') or None

    @property
    def remote_max_workers(self) -> int:
        return max(1, self.get_int('remote', 'max_workers', 2))


# Convenience function
def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
