"""Value types shared by the queue, the playback controller and the mirror."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Track:
    """A playable item as delivered by the catalog backend."""

    id: str
    title: str
    artist: str
    duration: int = 0  # seconds
    cover_url: Optional[str] = None
    media_ref: Optional[str] = None
    is_placeholder: bool = False

    def __post_init__(self):
        if self.duration < 0:
            raise ValueError(f"Track duration must be >= 0, got {self.duration}")

    @property
    def is_playable(self) -> bool:
        return not self.is_placeholder and bool(self.media_ref)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        """Build a track from a backend ``song`` object."""
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            artist=data.get("artist") or "",
            duration=max(0, int(data.get("duration") or 0)),
            cover_url=data.get("coverUrl") or None,
            media_ref=data.get("audioUrl") or None,
            is_placeholder=bool(data.get("isPlaceholder", False)),
        )


@dataclass(frozen=True)
class QueueEntry:
    """One occurrence of a track in the queue."""

    entry_id: str
    track: Track
    added_at: float = field(default_factory=time.time)

    @classmethod
    def create(cls, track: Track) -> "QueueEntry":
        return cls(entry_id=uuid.uuid4().hex, track=track)


class Transport(Enum):
    """Playback lifecycle phase."""

    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"


class RepeatMode(Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"

    def cycled(self) -> "RepeatMode":
        """Next mode in the Off -> All -> One -> Off cycle."""
        order = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class QueuePosition:
    """Where to insert new entries: ``NEXT``, ``END`` or ``QueuePosition.at(i)``."""

    __slots__ = ("kind", "index")

    def __init__(self, kind: str, index: Optional[int] = None):
        self.kind = kind
        self.index = index

    @classmethod
    def at(cls, index: int) -> "QueuePosition":
        return cls("index", index)

    def __eq__(self, other):
        if not isinstance(other, QueuePosition):
            return NotImplemented
        return (self.kind, self.index) == (other.kind, other.index)

    def __hash__(self):
        return hash((self.kind, self.index))

    def __repr__(self):
        if self.kind == "index":
            return f"QueuePosition.at({self.index})"
        return f"QueuePosition.{self.kind.upper()}"


QueuePosition.NEXT = QueuePosition("next")
QueuePosition.END = QueuePosition("end")


@dataclass(frozen=True)
class PlaybackState:
    """Immutable snapshot handed to subscribers."""

    current_entry: Optional[QueueEntry] = None
    transport: Transport = Transport.IDLE
    error_reason: Optional[str] = None
    position_ms: int = 0
    duration_ms: int = 0
    volume: float = 1.0
    shuffle: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    queue: Tuple[QueueEntry, ...] = ()
    history_index: int = -1

    @property
    def current_track(self) -> Optional[Track]:
        return self.current_entry.track if self.current_entry else None
