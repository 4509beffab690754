"""Event bus used to fan playback state out to UI collaborators."""

from typing import Any, Callable, Dict, List

from streamplay.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - UI collaborators call PlaybackController operations (requests)
    - PlaybackController publishes *_CHANGED events (notifications), at most
      one of each per operation
    - Every notification carries a full PlaybackState snapshot, never a diff
    """

    # PlaybackState snapshot after every operation that changed anything
    PLAYBACK_STATE_CHANGED = "playback.state_changed"
    # PlaybackState snapshot whenever current_entry switched (None when stopped)
    TRACK_CHANGED = "track.changed"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register ``callback`` for ``event``; returns a handle that unsubscribes it."""
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(event, callback)

        return unsubscribe

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def publish(self, event: str, data: Any = None) -> None:
        # Copy: callbacks may unsubscribe themselves
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )
