"""Per-session playback context.

One PlayerSession is constructed when the client starts and handed to
whatever needs to observe or drive playback. Nothing here is a module
global, so tests can build as many isolated sessions as they like.
"""

from typing import Callable, List, Optional

from streamplay.config import Config, get_config
from streamplay.dispatcher import EventDispatcher
from streamplay.events import EventBus
from streamplay.logging import get_logger
from streamplay.media_backend import MediaBackend
from streamplay.models import PlaybackState, QueueEntry
from streamplay.playback_controller import PlaybackController
from streamplay.queue_model import QueueModel
from streamplay.remote_queue import RemoteQueueMirror

logger = get_logger(__name__)


class PlayerSession:
    """Wires queue, controller, mirror and fan-out for one client session."""

    def __init__(
        self,
        backend: MediaBackend,
        config: Optional[Config] = None,
        mirror: Optional[RemoteQueueMirror] = None,
        schedule: Optional[Callable] = None,
    ):
        self.config = config or get_config()
        self.backend = backend

        self.dispatcher = EventDispatcher(schedule=schedule)
        self.event_bus = EventBus()
        self.queue = QueueModel()

        if mirror is None and self.config.remote_enabled:
            mirror = RemoteQueueMirror(
                self.config.remote_base_url,
                timeout=self.config.remote_timeout,
                auth_token=self.config.remote_auth_token,
                max_workers=self.config.remote_max_workers,
            )
        self.mirror = mirror

        self.controller = PlaybackController(
            self.queue,
            backend,
            self.event_bus,
            self.dispatcher,
            mirror=self.mirror,
            restart_threshold_ms=self.config.restart_threshold_ms,
            volume=self.config.initial_volume,
        )
        self.controller.set_volume(self.config.initial_volume)

    def subscribe(self, callback: Callable[[PlaybackState], None]) -> Callable[[], None]:
        """Call ``callback`` with a full snapshot on every change; returns an unsubscribe handle."""
        return self.event_bus.subscribe(EventBus.PLAYBACK_STATE_CHANGED, callback)

    def snapshot(self) -> PlaybackState:
        return self.controller.snapshot()

    def start(self) -> None:
        """Restore the persisted queue in the background."""
        if self.mirror is None:
            return
        logger.info("Fetching persisted queue from %s", self.mirror.base_url)
        self.mirror.fetch_async(self._on_remote_queue)

    def _on_remote_queue(self, entries: List[QueueEntry]) -> None:
        # Runs on a mirror worker thread; seeding happens on the dispatcher
        self.controller.seed_queue(entries)

    def close(self) -> None:
        self.controller.stop()
        if self.mirror is not None:
            self.mirror.close()
