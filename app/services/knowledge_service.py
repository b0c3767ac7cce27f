import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from app.logging_config import get_logger

logger = get_logger("knowledge_service")


@dataclass(frozen=True)
class KnowledgeEntry:
    code: str
    title: str
    description: str = ""
    steps: tuple[str, ...] = ()
    keywords: tuple[str, ...] = field(default_factory=tuple)


def _as_text_list(value) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(item).strip() for item in value if item is not None and str(item).strip())
    return (str(value).strip(),)


def parse_entries(data) -> dict[str, KnowledgeEntry]:
    """Build code -> entry from the parsed YAML document, keeping file order."""
    if isinstance(data, dict) and isinstance(data.get("entries"), dict):
        data = data["entries"]
    if not isinstance(data, dict):
        raise ValueError("Knowledge base must be a mapping of code -> entry")

    entries: dict[str, KnowledgeEntry] = {}
    for raw_code, raw_entry in data.items():
        code = str(raw_code).strip()
        if not code or not isinstance(raw_entry, dict):
            logger.warning(f"Skipping malformed knowledge entry: {raw_code!r}")
            continue
        entries[code] = KnowledgeEntry(
            code=code,
            title=str(raw_entry.get("title") or code).strip(),
            description=str(raw_entry.get("description") or "").strip(),
            steps=_as_text_list(raw_entry.get("steps")),
            keywords=_as_text_list(raw_entry.get("keywords")),
        )
    return entries


class KnowledgeBase:
    """Code-indexed help entries loaded from a YAML file.

    The file is re-read whenever its modification time changes. A file that
    fails to parse leaves the previously loaded entries in place.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._entries: dict[str, KnowledgeEntry] = {}
        self._mtime: Optional[float] = None
        self._lock = threading.Lock()

    def _refresh(self) -> dict[str, KnowledgeEntry]:
        with self._lock:
            try:
                mtime = self.path.stat().st_mtime
            except OSError as exc:
                if self._mtime is not None:
                    logger.warning(f"Knowledge base unavailable, serving cached entries: {exc}")
                return self._entries

            if mtime == self._mtime:
                return self._entries

            try:
                with self.path.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle) or {}
                entries = parse_entries(data)
            except (OSError, yaml.YAMLError, ValueError) as exc:
                logger.warning(
                    "Knowledge base reload failed",
                    extra={"context": {"path": str(self.path), "error": str(exc)}},
                )
                return self._entries

            self._entries = entries
            self._mtime = mtime
            logger.info(f"Knowledge base loaded: {len(entries)} entries from {self.path.name}")
            return self._entries

    def lookup(self, code: str) -> Optional[KnowledgeEntry]:
        return self._refresh().get(str(code).strip())

    def search(self, keyword: str) -> list[tuple[str, KnowledgeEntry]]:
        """Entries matching the keyword: title matches first, then file order."""
        needle = (keyword or "").strip().casefold()
        if not needle:
            return []

        title_hits: list[tuple[str, KnowledgeEntry]] = []
        other_hits: list[tuple[str, KnowledgeEntry]] = []
        for code, entry in self._refresh().items():
            if needle in entry.title.casefold():
                title_hits.append((code, entry))
            elif (
                needle in code.casefold()
                or any(needle in kw.casefold() for kw in entry.keywords)
                or needle in entry.description.casefold()
            ):
                other_hits.append((code, entry))
        return title_hits + other_hits
