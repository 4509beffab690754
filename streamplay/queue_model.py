"""Play queue: storage order, shuffle order and repeat-aware traversal."""

import hashlib
import random
from typing import Iterable, List, Optional, Set

from streamplay.exceptions import QueueInvariantViolation
from streamplay.logging import get_logger
from streamplay.models import QueueEntry, QueuePosition, RepeatMode, Track

logger = get_logger(__name__)


class QueueModel:
    """Ordered list of queue entries plus the shuffle/repeat flags.

    Pure data structure: no I/O and no notifications. The playback
    controller is the only caller that mutates it.

    The entry that is currently sounding is never dropped from storage while
    it plays. Removing it only *detaches* it: it disappears from ``entries``
    and from traversal results, but still anchors ``next_in_order`` until the
    controller moves on and calls ``set_current``.
    """

    def __init__(self) -> None:
        self._entries: List[QueueEntry] = []
        self._detached: Set[str] = set()
        self._current_id: Optional[str] = None

        self.shuffle: bool = False
        self.repeat_mode: RepeatMode = RepeatMode.OFF

        self._shuffle_order: Optional[List[str]] = None
        self._shuffle_key: Optional[frozenset] = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def entries(self) -> List[QueueEntry]:
        """Visible entries in storage order."""
        return [e for e in self._entries if e.entry_id not in self._detached]

    @property
    def current_id(self) -> Optional[str]:
        return self._current_id

    def __len__(self) -> int:
        return len(self._entries) - len(self._detached)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id not in self._detached and self._storage_index(entry_id) >= 0

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        """Look up an entry, including a detached current entry."""
        index = self._storage_index(entry_id)
        return self._entries[index] if index >= 0 else None

    def is_detached(self, entry_id: str) -> bool:
        return entry_id in self._detached

    def index_of(self, entry_id: str) -> int:
        """Visible storage index of an entry, or -1."""
        for i, entry in enumerate(self.entries):
            if entry.entry_id == entry_id:
                return i
        return -1

    def play_order(self) -> List[QueueEntry]:
        """Visible entries in traversal order (shuffle-aware)."""
        by_id = {e.entry_id: e for e in self._entries}
        return [by_id[i] for i in self._order() if i not in self._detached]

    def history_index(self) -> int:
        """Index of the current entry in the play order, or -1."""
        if self._current_id is None or self._current_id in self._detached:
            return -1
        visible = [i for i in self._order() if i not in self._detached]
        try:
            return visible.index(self._current_id)
        except ValueError:
            return -1

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_current(self, entry_id: Optional[str]) -> None:
        """Move the playback anchor; purges detached entries left behind."""
        if entry_id is not None and self._storage_index(entry_id) < 0:
            raise QueueInvariantViolation(entry_id)
        if entry_id != self._current_id:
            self._current_id = entry_id
            self.purge_detached()

    def purge_detached(self) -> None:
        """Drop detached entries that are no longer the current entry."""
        stale = self._detached - {self._current_id}
        if not stale:
            return
        self._entries = [e for e in self._entries if e.entry_id not in stale]
        self._detached -= stale

    def enqueue(self, track: Track, position: QueuePosition = QueuePosition.END) -> str:
        """Insert one track and return the new entry id."""
        return self.insert_entries([QueueEntry.create(track)], position)[0]

    def enqueue_many(
        self, tracks: Iterable[Track], position: QueuePosition = QueuePosition.END
    ) -> List[str]:
        """Insert several tracks, preserving input order."""
        return self.insert_entries([QueueEntry.create(t) for t in tracks], position)

    def insert_entries(self, entries: List[QueueEntry], position: QueuePosition) -> List[str]:
        """Insert pre-built entries at ``position``. Duplicate ids are skipped."""
        known = {e.entry_id for e in self._entries}
        fresh = []
        for entry in entries:
            if entry.entry_id in known:
                logger.warning("Skipping duplicate queue entry id %s", entry.entry_id)
                continue
            known.add(entry.entry_id)
            fresh.append(entry)

        index = self._insertion_index(position)
        self._entries[index:index] = fresh
        return [e.entry_id for e in fresh]

    def replace(self, entries: List[QueueEntry]) -> None:
        """Swap in a whole new queue (used when seeding from the backend)."""
        self._entries = []
        self._detached.clear()
        self._current_id = None
        self._shuffle_order = None
        self._shuffle_key = None
        self.insert_entries(entries, QueuePosition.END)

    def remove(self, entry_ids: Iterable[str]) -> Set[str]:
        """Remove entries by id and return the ids that were actually removed.

        The current entry is detached instead of deleted.
        """
        wanted = set(entry_ids)
        removed = set()
        for entry_id in wanted:
            if entry_id in self._detached or self._storage_index(entry_id) < 0:
                logger.debug("Ignoring removal of unknown entry %s", entry_id)
                continue
            removed.add(entry_id)

        if self._current_id in removed:
            self._detached.add(self._current_id)
        drop = removed - {self._current_id}
        if drop:
            self._entries = [e for e in self._entries if e.entry_id not in drop]
        return removed

    def reorder(self, entry_id: str, new_index: int) -> bool:
        """Move a visible entry to ``new_index`` (clamped) in storage order."""
        if entry_id not in self:
            logger.debug("Ignoring reorder of unknown entry %s", entry_id)
            return False

        entry = self._entries.pop(self._storage_index(entry_id))
        visible = [e for e in self._entries if e.entry_id not in self._detached]
        new_index = max(0, min(new_index, len(visible)))
        if new_index < len(visible):
            target = self._storage_index(visible[new_index].entry_id)
        else:
            target = len(self._entries)
        self._entries.insert(target, entry)
        return True

    def clear(self) -> None:
        """Empty the queue, keeping only the current entry."""
        self._entries = [e for e in self._entries if e.entry_id == self._current_id]
        self._detached &= {self._current_id}

    def set_shuffle(self, enabled: bool) -> bool:
        """Toggle shuffle. Returns False for a redundant call."""
        if enabled == self.shuffle:
            return False
        self.shuffle = enabled
        self._shuffle_order = None
        self._shuffle_key = None
        if enabled:
            self._order()
        return True

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def next_in_order(
        self, from_id: Optional[str], repeat_mode: Optional[RepeatMode] = None
    ) -> Optional[QueueEntry]:
        """Entry that follows ``from_id`` in play order, or None at the end.

        ``repeat_mode`` overrides the queue's own mode for this lookup.
        """
        return self._step(from_id, 1, repeat_mode or self.repeat_mode)

    def prev_in_order(
        self, from_id: Optional[str], repeat_mode: Optional[RepeatMode] = None
    ) -> Optional[QueueEntry]:
        """Entry that precedes ``from_id`` in play order, or None at the start."""
        return self._step(from_id, -1, repeat_mode or self.repeat_mode)

    def _step(self, from_id: Optional[str], direction: int, mode: RepeatMode) -> Optional[QueueEntry]:
        order = self._order()
        if from_id is None or from_id not in order:
            visible = [i for i in order if i not in self._detached]
            if not visible:
                return None
            return self.get(visible[0] if direction > 0 else visible[-1])

        if mode == RepeatMode.ONE and from_id not in self._detached:
            return self.get(from_id)

        pos = order.index(from_id)
        if direction > 0:
            candidates = order[pos + 1:]
            if mode != RepeatMode.OFF:
                candidates += order[:pos + 1]
        else:
            candidates = order[:pos][::-1]
            if mode != RepeatMode.OFF:
                candidates += order[pos:][::-1]

        for entry_id in candidates:
            if entry_id not in self._detached:
                return self.get(entry_id)
        return None

    def _order(self) -> List[str]:
        """Entry ids (detached ones included) in traversal order."""
        ids = [e.entry_id for e in self._entries]
        if not self.shuffle:
            return ids

        key = frozenset(ids)
        if self._shuffle_order is None or key != self._shuffle_key:
            self._shuffle_order = self._permute(ids)
            self._shuffle_key = key
        return list(self._shuffle_order)

    def _permute(self, ids: List[str]) -> List[str]:
        digest = hashlib.sha1("\n".join(ids).encode("utf-8")).hexdigest()
        rng = random.Random(int(digest[:16], 16))
        order = list(ids)
        rng.shuffle(order)
        # Current entry leads so that enabling shuffle never jumps
        if self._current_id in order:
            order.remove(self._current_id)
            order.insert(0, self._current_id)
        return order

    # ------------------------------------------------------------------

    def _storage_index(self, entry_id: str) -> int:
        for i, entry in enumerate(self._entries):
            if entry.entry_id == entry_id:
                return i
        return -1

    def _insertion_index(self, position: QueuePosition) -> int:
        if position.kind == "end":
            return len(self._entries)
        if position.kind == "next":
            current = self._storage_index(self._current_id) if self._current_id else -1
            return current + 1
        visible = self.entries
        index = max(0, min(position.index or 0, len(visible)))
        if index < len(visible):
            return self._storage_index(visible[index].entry_id)
        return len(self._entries)
