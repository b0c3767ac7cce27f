import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.logging_config import get_logger
from app.services.source_key import SourceKey, SourceKind

logger = get_logger("pending_images")

DEFAULT_TTL_SECONDS = 120.0


@dataclass(frozen=True)
class PendingImage:
    media_id: str
    stored_at: float


class PendingImageStore:
    """Last unread image per conversation, with lazy expiry.

    One entry per key; a new image replaces the previous one. Expired
    entries are removed when they are next read. All operations hold one
    lock so that consume() is a single check-and-clear step.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[SourceKey, PendingImage] = {}
        self._lock = threading.Lock()

    def put(self, key: SourceKey, media_id: str) -> Optional[PendingImage]:
        if key.kind == SourceKind.UNKNOWN:
            logger.warning(f"Image {media_id} from unknown source not cached")
            return None
        entry = PendingImage(media_id=media_id, stored_at=self._clock())
        with self._lock:
            replaced = self._entries.get(key)
            self._entries[key] = entry
        if replaced is not None:
            logger.debug(f"Pending image replaced for {key}: {replaced.media_id} -> {media_id}")
        return entry

    def peek(self, key: SourceKey) -> Optional[PendingImage]:
        with self._lock:
            return self._live_entry(key)

    def consume(self, key: SourceKey) -> Optional[PendingImage]:
        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                del self._entries[key]
            return entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: SourceKey) -> Optional[PendingImage]:
        # Caller holds the lock.
        if key.kind == SourceKind.UNKNOWN:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            logger.info(
                "Pending image expired",
                extra={"context": {"source": str(key), "media_id": entry.media_id}},
            )
            return None
        return entry
