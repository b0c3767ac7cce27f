from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from app.schemas.line import LineSource


class SourceKind(str, Enum):
    DIRECT = "direct"  # one-to-one chat with a user
    GROUP = "group"
    ROOM = "room"  # multi-person chat without a group
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SourceKey:
    kind: SourceKind
    id: str = ""

    @property
    def is_direct(self) -> bool:
        return self.kind == SourceKind.DIRECT

    @property
    def push_target(self) -> Optional[str]:
        """Persistent id usable with the push API, None when there is none."""
        if self.kind == SourceKind.UNKNOWN or not self.id:
            return None
        return self.id

    def __str__(self) -> str:
        if self.kind == SourceKind.UNKNOWN:
            return SourceKind.UNKNOWN.value
        return f"{self.kind.value}:{self.id}"


UNKNOWN_SOURCE = SourceKey(SourceKind.UNKNOWN)

_ID_FIELDS = {
    "user": (SourceKind.DIRECT, "userId"),
    "group": (SourceKind.GROUP, "groupId"),
    "room": (SourceKind.ROOM, "roomId"),
}


def resolve_source_key(source: LineSource | dict[str, Any] | None) -> SourceKey:
    """Map a webhook source descriptor to its conversation key.

    Never fails: a missing source, an unrecognised type or an empty id all
    collapse to UNKNOWN_SOURCE.
    """
    if source is None:
        return UNKNOWN_SOURCE
    if isinstance(source, LineSource):
        source = source.model_dump()
    if not isinstance(source, dict):
        return UNKNOWN_SOURCE

    mapping = _ID_FIELDS.get(str(source.get("type") or "").lower())
    if mapping is None:
        return UNKNOWN_SOURCE

    kind, id_field = mapping
    source_id = source.get(id_field)
    if not isinstance(source_id, str) or not source_id.strip():
        return UNKNOWN_SOURCE
    return SourceKey(kind, source_id.strip())
