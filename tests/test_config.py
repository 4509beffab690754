"""Tests for configuration management."""

import pytest
from streamplay.config import Config, get_config
from streamplay.exceptions import ConfigurationError


class TestConfig:
    """Test Config class."""

    def test_get_instance(self, mock_config):
        """Test singleton pattern."""
        config1 = get_config()
        config2 = get_config()
        assert config1 is config2

    def test_xdg_directories(self, temp_dir, mock_config):
        """Test XDG directory resolution."""
        assert mock_config.config_dir == temp_dir / 'config' / 'streamplay'
        assert mock_config.data_dir == temp_dir / 'data' / 'streamplay'
        assert mock_config.config_file.exists()

    def test_defaults(self, mock_config):
        """Test default values written on first run."""
        assert mock_config.restart_threshold_ms == 3000
        assert mock_config.initial_volume == 1.0
        assert mock_config.remote_enabled is True
        assert mock_config.remote_base_url == 'http://localhost:8080'
        assert mock_config.remote_timeout == 10.0
        assert mock_config.remote_auth_token is None
        assert mock_config.remote_max_workers == 2

    def test_config_get_set(self, mock_config):
        """Test getting and setting config values."""
        mock_config.set('remote', 'enabled', 'false')
        assert mock_config.get('remote', 'enabled') == 'false'
        assert mock_config.get_bool('remote', 'enabled') is False

    def test_values_persist(self, mock_config, monkeypatch):
        """Test values survive a reload."""
        mock_config.set('playback', 'restart_threshold_ms', '5000')
        monkeypatch.setattr(Config, '_instance', None)
        assert get_config().restart_threshold_ms == 5000

    def test_env_overrides(self, mock_config, monkeypatch):
        """Test environment overrides for the remote backend."""
        monkeypatch.setenv('STREAMPLAY_API_URL', 'https://api.example.com/')
        monkeypatch.setenv('STREAMPLAY_AUTH_TOKEN', 'tok')
        assert mock_config.remote_base_url == 'https://api.example.com'
        assert mock_config.remote_auth_token == 'tok'

    def test_volume_is_clamped(self, mock_config):
        mock_config.set('playback', 'volume', '3.5')
        assert mock_config.initial_volume == 1.0

    def test_invalid_values(self, mock_config):
        """Test invalid values raise ConfigurationError."""
        mock_config.set('playback', 'restart_threshold_ms', 'soon')
        with pytest.raises(ConfigurationError):
            mock_config.restart_threshold_ms

        mock_config.set('remote', 'timeout', '0')
        with pytest.raises(ConfigurationError):
            mock_config.remote_timeout

    def test_remote_max_workers_floor(self, mock_config):
        """Test the worker pool never drops below one thread."""
        mock_config.set('remote', 'max_workers', '0')
        assert mock_config.remote_max_workers == 1
