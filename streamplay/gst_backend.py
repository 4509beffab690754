"""GStreamer-based media backend for streamed tracks.

Plays the track's media URI through a ``playbin`` element and translates
bus messages into tagged MediaEvents:

- LOADED once the duration of a freshly loaded stream is known
- PROGRESS every POSITION_UPDATE_INTERVAL while playing
- ENDED on end-of-stream
- ERROR on a bus error

Requires PyGObject (``pip install streamplay[gst]``) and a running GLib
main loop. ``glib_schedule`` lets the EventDispatcher drain on that loop.
"""

from typing import Callable, Optional

import gi
gi.require_version('Gst', '1.0')
from gi.repository import Gst, GLib

from streamplay.exceptions import AdapterLoadError
from streamplay.logging import get_logger
from streamplay.media_backend import MediaBackend, MediaEventKind

logger = get_logger(__name__)

# GStreamer playbin flags
GST_FLAG_AUDIO = 0x02
GST_FLAG_SOFT_VOLUME = 0x10

# Update intervals (milliseconds)
DURATION_UPDATE_INTERVAL = 100
POSITION_UPDATE_INTERVAL = 500


def glib_schedule(drain: Callable[[], bool]) -> int:
    """Run ``drain`` from the GLib main loop (EventDispatcher schedule hook)."""
    return GLib.idle_add(drain)


class GstMediaBackend(MediaBackend):
    """Audio-only playbin driven by the playback controller."""

    def __init__(self):
        super().__init__()
        if not Gst.is_initialized():
            Gst.init(None)

        self.playbin: Optional[Gst.Element] = None
        self.volume: float = 1.0
        self._loaded_reported = False

        # Timeout callback IDs for cleanup
        self._position_timeout_id: Optional[int] = None
        self._duration_timeout_id: Optional[int] = None

        self._setup_pipeline()

    def _setup_pipeline(self):
        """Set up the GStreamer playbin pipeline."""
        self.playbin = Gst.ElementFactory.make("playbin", "playbin")
        if not self.playbin:
            raise AdapterLoadError("Failed to create GStreamer playbin")

        try:
            self.playbin.set_property("flags", GST_FLAG_AUDIO | GST_FLAG_SOFT_VOLUME)
        except (AttributeError, TypeError):
            # Ignore errors setting flags (playbin might not support this property)
            pass

        audio_sink = Gst.ElementFactory.make("autoaudiosink", "audiosink")
        if audio_sink:
            self.playbin.set_property("audio-sink", audio_sink)

        self.playbin.set_property("volume", self.volume)

        bus = self.playbin.get_bus()
        bus.add_signal_watch()
        bus.connect("message", self._on_message)

    def _on_message(self, bus: Gst.Bus, message: Gst.Message) -> bool:
        """
        Handle GStreamer bus messages.

        Args:
            bus: GStreamer message bus
            message: GStreamer message

        Returns:
            True to continue receiving messages
        """
        msg_type = message.type

        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            logger.error("Playback error: %s", err.message)
            if debug:
                logger.debug("GStreamer debug: %s", debug)
            self._stop_timers()
            self.emit(MediaEventKind.ERROR, err.message)

        elif msg_type == Gst.MessageType.EOS:
            self._stop_timers()
            self.emit(MediaEventKind.ENDED)

        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src == self.playbin:
                _, new_state, _ = message.parse_state_changed()
                if new_state == Gst.State.PLAYING and not self._loaded_reported:
                    if self._duration_timeout_id is not None:
                        GLib.source_remove(self._duration_timeout_id)
                    self._duration_timeout_id = GLib.timeout_add(
                        DURATION_UPDATE_INTERVAL, self._update_duration
                    )

        elif msg_type == Gst.MessageType.DURATION_CHANGED:
            self._update_duration()

        return True

    def _update_duration(self) -> bool:
        """Report LOADED once the stream duration is known; polls until then."""
        if not self.playbin or self._loaded_reported:
            self._duration_timeout_id = None
            return False
        success, duration = self.playbin.query_duration(Gst.Format.TIME)
        if success and duration > 0:
            self._loaded_reported = True
            self._duration_timeout_id = None
            self.emit(MediaEventKind.LOADED, int(duration // Gst.MSECOND))
            return False
        return True

    def _update_position(self) -> bool:
        """Report playback position (called periodically)."""
        if not self.playbin:
            self._position_timeout_id = None
            return False
        success, position = self.playbin.query_position(Gst.Format.TIME)
        if success:
            self.emit(MediaEventKind.PROGRESS, int(position // Gst.MSECOND))
        return True

    def _load(self, media_ref: str) -> None:
        if not media_ref:
            raise AdapterLoadError("No media URI")

        self._stop_timers()
        self.playbin.set_state(Gst.State.NULL)
        self._loaded_reported = False

        uri = media_ref if Gst.uri_is_valid(media_ref) else Gst.filename_to_uri(media_ref)
        self.playbin.set_property("uri", uri)

        ret = self.playbin.set_state(Gst.State.PAUSED)
        if ret == Gst.StateChangeReturn.FAILURE:
            raise AdapterLoadError(f"Failed to load {media_ref}")

    def play(self) -> None:
        """Start or resume playback."""
        ret = self.playbin.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            raise AdapterLoadError("Failed to start playback")

        if self._position_timeout_id is not None:
            GLib.source_remove(self._position_timeout_id)
        self._position_timeout_id = GLib.timeout_add(POSITION_UPDATE_INTERVAL, self._update_position)

    def pause(self) -> None:
        if self._position_timeout_id is not None:
            GLib.source_remove(self._position_timeout_id)
            self._position_timeout_id = None
        self.playbin.set_state(Gst.State.PAUSED)

    def stop(self) -> None:
        self._stop_timers()
        if self.playbin:
            self.playbin.set_state(Gst.State.NULL)

    def seek(self, position_ms: int) -> None:
        success = self.playbin.seek_simple(
            Gst.Format.TIME,
            Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT,
            int(max(0, position_ms) * Gst.MSECOND),
        )
        if not success:
            logger.warning("Seek failed for position %dms", position_ms)

    def set_volume(self, volume: float) -> None:
        """
        Set volume (0.0 to 1.0).

        Args:
            volume: Volume level from 0.0 to 1.0 (will be clamped)
        """
        self.volume = max(0.0, min(1.0, volume))
        if self.playbin:
            self.playbin.set_property("volume", self.volume)

    def _stop_timers(self) -> None:
        if self._position_timeout_id is not None:
            GLib.source_remove(self._position_timeout_id)
            self._position_timeout_id = None
        if self._duration_timeout_id is not None:
            GLib.source_remove(self._duration_timeout_id)
            self._duration_timeout_id = None

    def cleanup(self) -> None:
        """
        Clean up resources.

        Stops playback, removes signal watches, and releases GStreamer elements.
        """
        self.stop()
        if self.playbin:
            try:
                bus = self.playbin.get_bus()
                if bus:
                    bus.remove_signal_watch()
            except (AttributeError, RuntimeError):
                # Bus may already be destroyed
                pass
            self.playbin.set_state(Gst.State.NULL)
            self.playbin = None
