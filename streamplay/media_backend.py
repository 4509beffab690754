"""Contract between the playback controller and a platform media player.

The controller never talks to platform audio APIs. It drives a
``MediaBackend`` with fire-and-forget commands and learns about outcomes
only through ``MediaEvent`` objects delivered to the registered listener.
Every event carries the ``LoadToken`` of the load that produced it, which
is how the controller recognises events that belong to a track the user
has already skipped away from.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional


class LoadToken(NamedTuple):
    """Identifies one load: the target entry and a per-session generation."""

    entry_id: str
    generation: int


class MediaEventKind(Enum):
    LOADED = "loaded"      # value: duration in ms
    PROGRESS = "progress"  # value: position in ms
    ENDED = "ended"        # value: None
    ERROR = "error"        # value: reason string


class MediaEvent(NamedTuple):
    kind: MediaEventKind
    token: Optional[LoadToken]
    value: Any = None


MediaListener = Callable[[MediaEvent], None]


class MediaBackend(ABC):
    """Narrow capability interface over a platform media player.

    Commands may raise ``AdapterLoadError`` or ``AdapterTransientError``;
    everything else is reported asynchronously through events.
    """

    def __init__(self) -> None:
        self._listener: Optional[MediaListener] = None
        self._token: Optional[LoadToken] = None

    def set_listener(self, listener: Optional[MediaListener]) -> None:
        self._listener = listener

    @property
    def token(self) -> Optional[LoadToken]:
        """Token of the most recent load."""
        return self._token

    def emit(self, kind: MediaEventKind, value: Any = None,
             token: Optional[LoadToken] = None) -> None:
        """Deliver an event tagged with ``token`` (default: the latest load)."""
        if self._listener is not None:
            self._listener(MediaEvent(kind, token if token is not None else self._token, value))

    def load(self, media_ref: str, token: LoadToken) -> None:
        """Start loading ``media_ref``; supersedes any load in flight."""
        self._token = token
        self._load(media_ref)

    @abstractmethod
    def _load(self, media_ref: str) -> None:
        ...

    @abstractmethod
    def play(self) -> None:
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def seek(self, position_ms: int) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        ...
