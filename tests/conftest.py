"""Pytest configuration and fixtures."""

import pytest
import tempfile
import shutil
from pathlib import Path

from streamplay.dispatcher import EventDispatcher
from streamplay.events import EventBus
from streamplay.media_backend import MediaBackend, MediaEventKind
from streamplay.models import Track
from streamplay.playback_controller import PlaybackController
from streamplay.queue_model import QueueModel


class FakeBackend(MediaBackend):
    """Records commands; tests fire events by hand."""

    def __init__(self):
        super().__init__()
        self.calls = []
        self.tokens = []
        self.fail_next_load = None

    def _load(self, media_ref):
        self.calls.append(("load", media_ref))
        self.tokens.append(self.token)
        if self.fail_next_load is not None:
            error, self.fail_next_load = self.fail_next_load, None
            raise error

    def play(self):
        self.calls.append(("play",))

    def pause(self):
        self.calls.append(("pause",))

    def stop(self):
        self.calls.append(("stop",))

    def seek(self, position_ms):
        self.calls.append(("seek", position_ms))

    def set_volume(self, volume):
        self.calls.append(("set_volume", volume))

    def loads(self):
        return [c[1] for c in self.calls if c[0] == "load"]

    def loaded(self, duration_ms, token=None):
        self.emit(MediaEventKind.LOADED, duration_ms, token)

    def progress(self, position_ms, token=None):
        self.emit(MediaEventKind.PROGRESS, position_ms, token)

    def ended(self, token=None):
        self.emit(MediaEventKind.ENDED, None, token)

    def error(self, reason, token=None):
        self.emit(MediaEventKind.ERROR, reason, token)


def make_track(track_id, duration=180, **kwargs):
    kwargs.setdefault("media_ref", f"http://cdn.example.com/{track_id}.mp3")
    return Track(
        id=str(track_id),
        title=f"Song {track_id}",
        artist="Artist",
        duration=duration,
        **kwargs,
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Configuration with XDG directories redirected to a temporary directory."""
    from streamplay.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    monkeypatch.delenv('STREAMPLAY_API_URL', raising=False)
    monkeypatch.delenv('STREAMPLAY_AUTH_TOKEN', raising=False)
    monkeypatch.setattr(Config, '_instance', None)

    return Config.get_instance()


@pytest.fixture
def tracks():
    return [make_track(i) for i in range(1, 6)]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def queue():
    return QueueModel()


@pytest.fixture
def controller(queue, backend, event_bus):
    return PlaybackController(queue, backend, event_bus, EventDispatcher())
