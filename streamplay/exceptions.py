"""Exception hierarchy for the playback core.

Adapter errors stop at the playback controller and surface as the ERROR
transport state. Remote sync errors stop at the queue mirror.
"""

from typing import Optional


class StreamPlayError(Exception):
    """Base exception for all playback core errors."""

    pass


class PlayerError(StreamPlayError):
    """Errors reported by the media backend."""

    pass


class AdapterLoadError(PlayerError):
    """Media failed to load or start playing."""

    pass


class AdapterTransientError(PlayerError):
    """Short-lived streaming failure (network blip, buffer underrun)."""

    pass


class QueueInvariantViolation(StreamPlayError):
    """A queue operation referenced an entry that does not exist."""

    def __init__(self, entry_id: str, message: Optional[str] = None):
        super().__init__(message or f"Unknown queue entry: {entry_id}")
        self.entry_id = entry_id


class RemoteSyncFailure(StreamPlayError):
    """A call to the backend queue service failed."""

    def __init__(self, operation: str, message: str, status: Optional[int] = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.status = status


class ConfigurationError(StreamPlayError):
    """Errors related to configuration."""

    pass
