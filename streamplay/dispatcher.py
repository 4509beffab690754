"""Single sequencing context for playback state.

User intents and media backend events are both turned into work items and
run one at a time, in the order they were posted. A work item never runs
nested inside another: anything posted while a drain is in progress (from a
subscriber callback, a backend callback or another thread) waits its turn.
"""

import threading
from collections import deque
from typing import Any, Callable, Deque, Optional, Tuple

from streamplay.logging import get_logger

logger = get_logger(__name__)

WorkItem = Tuple[Callable[..., Any], Tuple[Any, ...]]


class EventDispatcher:
    """FIFO of work items drained by a single owner.

    Args:
        schedule: Optional hook that defers the drain to a host main loop,
            e.g. ``GLib.idle_add``. It receives a callable that returns
            False when done. Without it the posting thread drains inline.
    """

    def __init__(self, schedule: Optional[Callable[[Callable[[], bool]], Any]] = None):
        self._schedule = schedule
        self._pending: Deque[WorkItem] = deque()
        self._lock = threading.Lock()
        self._draining = False

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        """Queue ``fn(*args)`` and make sure a drain is under way."""
        with self._lock:
            self._pending.append((fn, args))
            if self._draining:
                return
            self._draining = True

        if self._schedule is None:
            self._drain()
            return
        try:
            self._schedule(self._drain)
        except Exception:
            # Nothing will drain; let the next post try again
            with self._lock:
                self._draining = False
            raise

    def _drain(self) -> bool:
        while True:
            with self._lock:
                if not self._pending:
                    self._draining = False
                    return False
                fn, args = self._pending.popleft()
            try:
                fn(*args)
            except Exception as e:
                logger.error(
                    "Unhandled error in %s: %s",
                    getattr(fn, "__qualname__", repr(fn)), e, exc_info=True,
                )
