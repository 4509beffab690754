"""Playback controller - owns the current entry and the transport state machine.

States: IDLE -> LOADING -> PLAYING <-> PAUSED, with PLAYING/PAUSED/LOADING ->
ENDED on natural completion and any state -> ERROR on a backend failure.
ERROR -> LOADING on retry or skip. IDLE is also the rest state after stop.

All operations run on the EventDispatcher, so user intents and media events
never interleave. Each run publishes at most one PLAYBACK_STATE_CHANGED
(and one TRACK_CHANGED when the current entry switched).
"""
from typing import Any, Callable, Iterable, List, Optional, TYPE_CHECKING

from streamplay.dispatcher import EventDispatcher
from streamplay.events import EventBus
from streamplay.exceptions import PlayerError
from streamplay.logging import get_logger
from streamplay.media_backend import LoadToken, MediaBackend, MediaEvent, MediaEventKind
from streamplay.models import (
    PlaybackState,
    QueueEntry,
    QueuePosition,
    RepeatMode,
    Track,
    Transport,
)
from streamplay.queue_model import QueueModel

if TYPE_CHECKING:
    from streamplay.remote_queue import RemoteQueueMirror

logger = get_logger(__name__)

# prev() below this position skips back; at or above it restarts the track
DEFAULT_RESTART_THRESHOLD_MS = 3000

ACTIVE_STATES = (Transport.LOADING, Transport.PLAYING, Transport.PAUSED)


class PlaybackController:
    """Drives the media backend and mutates the queue; publishes state snapshots."""

    def __init__(
        self,
        queue: QueueModel,
        backend: MediaBackend,
        event_bus: EventBus,
        dispatcher: EventDispatcher,
        mirror: Optional["RemoteQueueMirror"] = None,
        restart_threshold_ms: int = DEFAULT_RESTART_THRESHOLD_MS,
        volume: float = 1.0,
    ):
        self._queue = queue
        self._backend = backend
        self._events = event_bus
        self._dispatcher = dispatcher
        self._mirror = mirror
        self.restart_threshold_ms = restart_threshold_ms

        self._current: Optional[QueueEntry] = None
        self._transport = Transport.IDLE
        self._error_reason: Optional[str] = None
        self._position_ms = 0
        self._duration_ms = 0
        self._volume = max(0.0, min(1.0, volume))

        # Load tagging: events whose token differs from _token are stale
        self._token: Optional[LoadToken] = None
        self._generation = 0
        self._loaded = False
        # Accept one backwards progress event after a seek
        self._seeked = False

        self._backend.set_listener(self.handle_media_event)

    # =========================================================================
    # Snapshot
    # =========================================================================

    def snapshot(self) -> PlaybackState:
        return PlaybackState(
            current_entry=self._current,
            transport=self._transport,
            error_reason=self._error_reason,
            position_ms=self._position_ms,
            duration_ms=self._duration_ms,
            volume=self._volume,
            shuffle=self._queue.shuffle,
            repeat_mode=self._queue.repeat_mode,
            queue=tuple(self._queue.entries),
            history_index=self._queue.history_index(),
        )

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def current_entry(self) -> Optional[QueueEntry]:
        return self._current

    # =========================================================================
    # Public operations (serialized through the dispatcher)
    # =========================================================================

    def play(self, entry: Optional[QueueEntry] = None) -> None:
        self._submit(self._do_play, entry)

    def play_track(self, track: Track) -> str:
        """Queue ``track`` right after the current entry and play it."""
        entry = QueueEntry.create(track)
        self._submit(self._do_play, entry)
        return entry.entry_id

    def pause(self) -> None:
        self._submit(self._do_pause)

    def toggle_play_pause(self) -> None:
        self._submit(self._do_toggle)

    def next(self) -> None:
        self._submit(self._do_next)

    def prev(self) -> None:
        self._submit(self._do_prev)

    def seek(self, position_ms: int) -> None:
        self._submit(self._do_seek, position_ms)

    def stop(self) -> None:
        self._submit(self._do_stop)

    def set_volume(self, volume: float) -> None:
        self._submit(self._do_set_volume, volume)

    def set_shuffle(self, enabled: bool) -> None:
        self._submit(self._do_set_shuffle, enabled)

    def cycle_repeat_mode(self) -> None:
        self._submit(self._do_cycle_repeat)

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._submit(self._do_set_repeat, mode)

    def enqueue(self, track: Track, position: QueuePosition = QueuePosition.END) -> str:
        entry = QueueEntry.create(track)
        self._submit(self._do_enqueue, [entry], position)
        return entry.entry_id

    def enqueue_many(
        self, tracks: Iterable[Track], position: QueuePosition = QueuePosition.END
    ) -> List[str]:
        entries = [QueueEntry.create(t) for t in tracks]
        self._submit(self._do_enqueue, entries, position)
        return [e.entry_id for e in entries]

    def remove(self, entry_ids: Iterable[str]) -> None:
        self._submit(self._do_remove, set(entry_ids))

    def reorder(self, entry_id: str, new_index: int) -> None:
        self._submit(self._do_reorder, entry_id, new_index)

    def clear(self) -> None:
        self._submit(self._do_clear)

    def seed_queue(self, entries: List[QueueEntry]) -> None:
        """Adopt a remotely persisted queue, unless the local queue is populated."""
        self._submit(self._do_seed, list(entries))

    def handle_media_event(self, event: MediaEvent) -> None:
        """Backend listener; safe to call from any thread."""
        self._submit(self._do_media_event, event)

    # =========================================================================
    # Sequencing and notification
    # =========================================================================

    def _submit(self, fn: Callable[..., None], *args: Any) -> None:
        self._dispatcher.post(self._run, fn, args)

    def _run(self, fn: Callable[..., None], args: tuple) -> None:
        before = self.snapshot()
        fn(*args)
        after = self.snapshot()
        if after != before:
            self._events.publish(EventBus.PLAYBACK_STATE_CHANGED, after)
        before_id = before.current_entry.entry_id if before.current_entry else None
        after_id = after.current_entry.entry_id if after.current_entry else None
        if after_id != before_id:
            self._events.publish(EventBus.TRACK_CHANGED, after)

    # =========================================================================
    # Transport
    # =========================================================================

    def _set_transport(self, transport: Transport, reason: Optional[str] = None) -> None:
        if transport != self._transport:
            logger.debug("Transport %s -> %s", self._transport.value, transport.value)
        self._transport = transport
        self._error_reason = reason if transport == Transport.ERROR else None

    def _fail(self, reason: str) -> None:
        logger.warning("Playback error on %s: %s",
                       self._current.entry_id if self._current else None, reason)
        self._set_transport(Transport.ERROR, reason)

    def _start(self, entry: QueueEntry) -> None:
        """Make ``entry`` current and load it; supersedes any load in flight."""
        self._queue.set_current(entry.entry_id)
        self._current = entry
        self._position_ms = 0
        self._duration_ms = 0
        self._loaded = False
        self._seeked = False
        self._generation += 1
        self._token = LoadToken(entry.entry_id, self._generation)

        if not entry.track.is_playable:
            self._backend_call(self._backend.stop)
            self._fail("track is not playable")
            return

        self._set_transport(Transport.LOADING)
        try:
            self._backend.load(entry.track.media_ref, self._token)
            self._backend.play()
        except PlayerError as e:
            self._fail(str(e))

    def _backend_call(self, command: Callable[..., None], *args: Any) -> bool:
        try:
            command(*args)
        except PlayerError as e:
            self._fail(str(e))
            return False
        return True

    def _do_play(self, entry: Optional[QueueEntry] = None) -> None:
        if entry is not None:
            if self._queue.get(entry.entry_id) is None:
                self._queue.insert_entries([entry], QueuePosition.NEXT)
                if self._mirror is not None:
                    self._mirror.add(entry, QueuePosition.NEXT)
            self._start(self._queue.get(entry.entry_id))
            return

        if self._transport == Transport.PAUSED:
            if self._backend_call(self._backend.play):
                self._set_transport(Transport.PLAYING if self._loaded else Transport.LOADING)
        elif self._transport in (Transport.ERROR, Transport.ENDED) and self._current:
            # Retry after an error, replay after the queue ran out
            self._start(self._current)
        elif self._transport == Transport.IDLE:
            first = self._queue.next_in_order(None)
            if first is None:
                logger.debug("play() ignored: queue is empty")
                return
            self._start(first)

    def _do_pause(self) -> None:
        if self._transport not in (Transport.PLAYING, Transport.LOADING):
            return
        if self._backend_call(self._backend.pause):
            self._set_transport(Transport.PAUSED)

    def _do_toggle(self) -> None:
        if self._transport in (Transport.PLAYING, Transport.LOADING):
            self._do_pause()
        else:
            self._do_play()

    def _skip_mode(self) -> Optional[RepeatMode]:
        # A user skip always moves, even with repeat-one
        return RepeatMode.ALL if self._queue.repeat_mode == RepeatMode.ONE else None

    def _do_next(self) -> None:
        current_id = self._current.entry_id if self._current else None
        target = self._queue.next_in_order(current_id, self._skip_mode())
        if target is None:
            self._do_stop()
        else:
            self._start(target)

    def _do_prev(self) -> None:
        if self._current is None:
            return
        if self._position_ms < self.restart_threshold_ms:
            target = self._queue.prev_in_order(self._current.entry_id, self._skip_mode())
            if target is not None:
                self._start(target)
                return
        self._restart()

    def _restart(self) -> None:
        if self._transport not in ACTIVE_STATES:
            self._start(self._current)
            return
        if self._backend_call(self._backend.seek, 0):
            self._position_ms = 0
            self._seeked = True

    def _do_seek(self, position_ms: int) -> None:
        if self._current is None or self._transport not in ACTIVE_STATES:
            return
        position_ms = int(position_ms)
        if self._duration_ms > 0:
            clamped = max(0, min(position_ms, self._duration_ms))
        else:
            clamped = max(0, position_ms)
        if self._backend_call(self._backend.seek, clamped):
            # Optimistic; corrected by the next progress event
            self._position_ms = clamped
            self._seeked = True

    def _do_stop(self) -> None:
        self._backend_call(self._backend.stop)
        self._current = None
        self._token = None
        self._position_ms = 0
        self._duration_ms = 0
        self._loaded = False
        self._queue.set_current(None)
        self._set_transport(Transport.IDLE)

    def _do_set_volume(self, volume: float) -> None:
        volume = max(0.0, min(1.0, float(volume)))
        try:
            self._backend.set_volume(volume)
        except PlayerError as e:
            logger.warning("Failed to set volume: %s", e)
            return
        self._volume = volume

    def _do_set_shuffle(self, enabled: bool) -> None:
        self._queue.set_shuffle(bool(enabled))

    def _do_cycle_repeat(self) -> None:
        self._queue.repeat_mode = self._queue.repeat_mode.cycled()

    def _do_set_repeat(self, mode: RepeatMode) -> None:
        self._queue.repeat_mode = RepeatMode(mode)

    # =========================================================================
    # Queue mutation (write-through to the mirror)
    # =========================================================================

    def _do_enqueue(self, entries: List[QueueEntry], position: QueuePosition) -> None:
        inserted = set(self._queue.insert_entries(entries, position))
        entries = [e for e in entries if e.entry_id in inserted]
        if not entries or self._mirror is None:
            return
        if len(entries) == 1:
            self._mirror.add(entries[0], position)
        else:
            self._mirror.add_many(entries, position)

    def _do_remove(self, entry_ids: set) -> None:
        removed = self._queue.remove(entry_ids)
        if removed and self._mirror is not None:
            self._mirror.remove(sorted(removed))

    def _do_reorder(self, entry_id: str, new_index: int) -> None:
        if self._queue.reorder(entry_id, new_index) and self._mirror is not None:
            self._mirror.reorder(entry_id, self._queue.index_of(entry_id))

    def _do_clear(self) -> None:
        self._queue.clear()
        if self._mirror is not None:
            self._mirror.clear()

    def _do_seed(self, entries: List[QueueEntry]) -> None:
        if len(self._queue) or self._current is not None:
            logger.info("Local queue already populated; discarding %d remote entries", len(entries))
            return
        self._queue.replace(entries)
        logger.info("Restored %d queue entries from backend", len(self._queue))

    # =========================================================================
    # Media events
    # =========================================================================

    def _do_media_event(self, event: MediaEvent) -> None:
        if event.token is None or event.token != self._token:
            logger.debug("Dropping stale %s event for %s", event.kind.value, event.token)
            return

        if event.kind == MediaEventKind.LOADED:
            self._on_loaded(int(event.value or 0))
        elif event.kind == MediaEventKind.PROGRESS:
            self._on_progress(int(event.value or 0))
        elif event.kind == MediaEventKind.ENDED:
            self._on_ended()
        elif event.kind == MediaEventKind.ERROR:
            self._fail(str(event.value or "playback error"))

    def _on_loaded(self, duration_ms: int) -> None:
        self._loaded = True
        self._duration_ms = max(0, duration_ms)
        if self._duration_ms:
            self._position_ms = min(self._position_ms, self._duration_ms)
        if self._transport == Transport.LOADING:
            self._set_transport(Transport.PLAYING)

    def _on_progress(self, position_ms: int) -> None:
        if self._transport not in ACTIVE_STATES:
            return
        if position_ms < self._position_ms and not self._seeked:
            logger.debug("Ignoring out-of-order progress %d < %d", position_ms, self._position_ms)
            return
        self._seeked = False
        position_ms = max(0, position_ms)
        if self._duration_ms:
            position_ms = min(position_ms, self._duration_ms)
        self._position_ms = position_ms

    def _on_ended(self) -> None:
        if self._transport not in ACTIVE_STATES:
            return
        current = self._current
        if (self._queue.repeat_mode == RepeatMode.ONE
                and not self._queue.is_detached(current.entry_id)):
            self._start(current)
            return

        target = self._queue.next_in_order(current.entry_id)
        if target is not None:
            self._start(target)
        elif self._queue.is_detached(current.entry_id):
            self._do_stop()
        else:
            self._position_ms = self._duration_ms
            self._set_transport(Transport.ENDED)
