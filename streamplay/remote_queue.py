"""Write-through mirror of the play queue on the backend.

The local queue is authoritative for the running session. The backend copy
only exists so a queue survives an app restart: it is read once at session
start and afterwards only written to. Writes are fire-and-forget on a
small thread pool; failures are logged and never rolled back locally.
"""

import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import requests

from streamplay.exceptions import RemoteSyncFailure
from streamplay.logging import get_logger
from streamplay.models import QueueEntry, QueuePosition, Track

logger = get_logger(__name__)

QUEUE_PATH = "/api/queue"
ADD_PATH = "/api/queue/add"
ADD_MULTIPLE_PATH = "/api/queue/add-multiple"
REMOVE_PATH = "/api/queue/remove"
REORDER_PATH = "/api/queue/reorder"

LOOPBACK_HOSTS = re.compile(r"localhost|127\.0\.0\.1|0\.0\.0\.0")


def rewrite_loopback_url(url: Optional[str], base_url: str) -> Optional[str]:
    """Point media URLs the backend built for itself at the host we reach it on."""
    if not url:
        return url
    host = urlparse(base_url).hostname
    if not host or LOOPBACK_HOSTS.fullmatch(host):
        return url
    return LOOPBACK_HOSTS.sub(host, url)


def position_payload(position: QueuePosition) -> Dict[str, Any]:
    if position.kind == "index":
        return {"index": position.index}
    return {"position": position.kind}


def parse_timestamp(value: Any) -> Optional[float]:
    """Epoch seconds from an ISO 8601 string or an epoch number (s or ms)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        # Values this large are milliseconds
        return value / 1000.0 if value > 1e11 else float(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class RemoteQueueMirror:
    """Best-effort client for the backend queue endpoints.

    Args:
        base_url: Backend root, e.g. ``http://192.168.1.20:8080``
        timeout: Bound on each HTTP call, in seconds
        auth_token: Bearer token, if the backend requires one
        session: Injected ``requests.Session`` (tests)
        executor: Injected executor for background calls
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        auth_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 2,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if auth_token:
            self._session.headers["Authorization"] = f"Bearer {auth_token}"
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="queue-mirror"
        )
        # local entry id -> backend item id
        self._remote_ids: Dict[str, str] = {}
        self._ids_lock = threading.Lock()

    # =========================================================================
    # Read
    # =========================================================================

    def fetch(self) -> List[QueueEntry]:
        """Fetch the persisted queue. Raises RemoteSyncFailure."""
        response = self._request("fetch", "GET", QUEUE_PATH, allow_404=True)
        if response is None:
            return []
        items = response.get("queue") or []
        if not isinstance(items, list):
            raise RemoteSyncFailure("fetch", "malformed response: 'queue' is not a list")

        parsed = []
        for item in items:
            result = self._parse_item(item)
            if result is not None:
                parsed.append(result)
        parsed.sort(key=lambda pair: pair[0])
        return [entry for _, entry in parsed]

    def fetch_async(self, callback: Callable[[List[QueueEntry]], None]) -> Future:
        """Run ``fetch`` in the background and hand the entries to ``callback``.

        A failed fetch is logged and the callback is not called.
        """
        def task():
            try:
                entries = self.fetch()
            except RemoteSyncFailure as e:
                logger.warning("Could not restore queue from backend: %s", e)
                return
            except Exception as e:
                logger.warning("Could not restore queue from backend: %s", e, exc_info=True)
                return
            try:
                callback(entries)
            except Exception as e:
                logger.error("Queue restore callback failed: %s", e, exc_info=True)

        return self._executor.submit(task)

    # =========================================================================
    # Write-through (fire-and-forget)
    # =========================================================================

    def add(self, entry: QueueEntry, position: QueuePosition) -> Future:
        payload = {"songId": self._song_id(entry.track)}
        payload.update(position_payload(position))

        def task():
            response = self._request("add", "POST", ADD_PATH, json=payload)
            item = (response or {}).get("item")
            if isinstance(item, dict) and item.get("id") is not None:
                self._remember(entry.entry_id, str(item["id"]))

        return self._fire("add", task)

    def add_many(self, entries: List[QueueEntry], position: QueuePosition) -> Future:
        entries = list(entries)
        payload = {"songIds": [self._song_id(e.track) for e in entries]}
        payload.update(position_payload(position))

        def task():
            response = self._request("add-multiple", "POST", ADD_MULTIPLE_PATH, json=payload)
            items = (response or {}).get("items")
            if not isinstance(items, list):
                items = []
            for entry, item in zip(entries, items):
                if isinstance(item, dict) and item.get("id") is not None:
                    self._remember(entry.entry_id, str(item["id"]))

        return self._fire("add-multiple", task)

    def remove(self, entry_ids: Iterable[str]) -> Future:
        item_ids = [self.remote_id(i) for i in entry_ids]

        def task():
            self._request("remove", "POST", REMOVE_PATH, json={"itemIds": item_ids})
            with self._ids_lock:
                for entry_id in list(self._remote_ids):
                    if self._remote_ids[entry_id] in item_ids:
                        del self._remote_ids[entry_id]

        return self._fire("remove", task)

    def reorder(self, entry_id: str, new_position: int) -> Future:
        payload = {"itemId": self.remote_id(entry_id), "newPosition": new_position}
        return self._fire("reorder", lambda: self._request("reorder", "POST", REORDER_PATH, json=payload))

    def clear(self) -> Future:
        return self._fire("clear", lambda: self._request("clear", "DELETE", QUEUE_PATH))

    def remote_id(self, entry_id: str) -> str:
        """Backend item id for a local entry (the local id until the backend assigned one)."""
        with self._ids_lock:
            return self._remote_ids.get(entry_id, entry_id)

    def close(self, wait: bool = True) -> None:
        """Stop accepting calls; with ``wait`` let queued ones finish first."""
        self._executor.shutdown(wait=wait)
        self._session.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _fire(self, operation: str, task: Callable[[], Any]) -> Future:
        def guarded():
            try:
                task()
            except RemoteSyncFailure as e:
                logger.warning("Queue sync '%s' failed: %s", operation, e)
            except Exception as e:
                logger.warning("Queue sync '%s' failed: %s", operation, e, exc_info=True)

        try:
            return self._executor.submit(guarded)
        except RuntimeError as e:
            # Executor already shut down at session end
            logger.debug("Dropping queue sync '%s': %s", operation, e)
            future: Future = Future()
            future.set_result(None)
            return future

    def _request(self, operation: str, method: str, path: str,
                 allow_404: bool = False, **kwargs) -> Optional[Dict[str, Any]]:
        url = self.base_url + path
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise RemoteSyncFailure(operation, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise RemoteSyncFailure(operation, str(e)) from e

        if allow_404 and response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise RemoteSyncFailure(operation, f"HTTP {response.status_code}", response.status_code)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteSyncFailure(operation, "invalid JSON response", response.status_code) from e
        if not isinstance(data, dict):
            raise RemoteSyncFailure(operation, "malformed response", response.status_code)
        return data

    def _parse_item(self, item: Any) -> Optional[Tuple[int, QueueEntry]]:
        """(position, entry) for one backend queue item, or None if it is unusable."""
        if not isinstance(item, dict) or not isinstance(item.get("song"), dict):
            logger.warning("Skipping malformed queue item: %r", item)
            return None
        song = dict(item["song"])
        song["coverUrl"] = rewrite_loopback_url(song.get("coverUrl"), self.base_url)
        song["audioUrl"] = rewrite_loopback_url(song.get("audioUrl"), self.base_url)
        try:
            track = Track.from_dict(song)
            entry_id = str(item["id"])
            position = int(item.get("position") or 0)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed queue item %r: %s", item.get("id"), e)
            return None
        self._remember(entry_id, entry_id)

        added_at = parse_timestamp(item.get("addedAt"))
        if added_at is None:
            entry = QueueEntry(entry_id=entry_id, track=track)
        else:
            entry = QueueEntry(entry_id=entry_id, track=track, added_at=added_at)
        return position, entry

    def _remember(self, entry_id: str, remote_id: str) -> None:
        with self._ids_lock:
            self._remote_ids[entry_id] = remote_id

    @staticmethod
    def _song_id(track: Track) -> Any:
        # Backend song ids are integers; keep other ids as strings
        return int(track.id) if track.id.isdigit() else track.id
