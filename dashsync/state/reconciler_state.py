"""
ReconcilerState: everything the adapter remembers between runs.

- first-boot flag and the cached permanent API key
- per-board removal sets (user deleted the tile, never re-add it there)
- per-URL discovery records, including the boards the app was placed on
- last successful sync time

Serialized as one JSON document; `from_dict` migrates older schema versions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

STATE_VERSION = 2

# Board key used for removals migrated from the unscoped v1 format
ALL_BOARDS = "*"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class DiscoveredApp:
    """What we know about one URL we have synced."""
    name: str
    container_id: str = ""
    added_at: datetime = field(default_factory=utcnow)
    boards: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "container_id": self.container_id,
            "added_at": self.added_at.isoformat(),
            "boards": sorted(self.boards),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveredApp":
        return cls(
            name=str(data.get("name", "")),
            container_id=str(data.get("container_id") or ""),
            added_at=_parse_ts(data.get("added_at")) or utcnow(),
            boards=set(data.get("boards") or []),
        )


@dataclass
class ReconcilerState:
    version: int = STATE_VERSION
    first_boot_completed: bool = False
    api_key: Optional[str] = None
    removed: Dict[str, Set[str]] = field(default_factory=dict)
    discovered: Dict[str, DiscoveredApp] = field(default_factory=dict)
    last_sync: Optional[datetime] = None

    # ========== Removal tracking ==========

    def is_removed(self, board_id: str, url: str) -> bool:
        return url in self.removed.get(board_id, ()) or url in self.removed.get(ALL_BOARDS, ())

    def mark_removed(self, board_id: str, url: str) -> None:
        self.removed.setdefault(board_id, set()).add(url)
        record = self.discovered.get(url)
        if record is not None:
            record.boards.discard(board_id)

    def restore(self, board_id: str, url: str) -> bool:
        """Forget a removal so the next cycle re-adds the app. Returns True if one was dropped."""
        urls = self.removed.get(board_id)
        if not urls or url not in urls:
            return False
        urls.discard(url)
        if not urls:
            del self.removed[board_id]
        return True

    # ========== Discovery records ==========

    def record_discovered(self, url: str, name: str, container_id: str = "") -> DiscoveredApp:
        """Insert or refresh a record; first-added time is kept across refreshes."""
        record = self.discovered.get(url)
        if record is None:
            record = DiscoveredApp(name=name, container_id=container_id)
            self.discovered[url] = record
        else:
            record.name = name
            if container_id:
                record.container_id = container_id
        return record

    def was_placed_on(self, board_id: str, url: str) -> bool:
        record = self.discovered.get(url)
        return record is not None and board_id in record.boards

    def mark_placed(self, board_id: str, url: str) -> None:
        record = self.discovered.get(url)
        if record is not None:
            record.boards.add(board_id)

    def update_sync_time(self) -> None:
        self.last_sync = utcnow()

    # ========== Serialization ==========

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "first_boot_completed": self.first_boot_completed,
            "api_key": self.api_key,
            "removed": {board: sorted(urls) for board, urls in self.removed.items()},
            "discovered": {url: rec.to_dict() for url, rec in self.discovered.items()},
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconcilerState":
        """
        Build from a persisted document.

        Raises ValueError/TypeError/KeyError on structurally invalid input; the
        store turns those into StateCorrupt.
        """
        if not isinstance(data, dict):
            raise TypeError("state document must be an object")

        removed: Dict[str, Set[str]] = {
            str(board): set(urls) for board, urls in (data.get("removed") or {}).items()
        }
        # v1: one global set, not scoped to a board
        legacy = data.get("removed_apps")
        if legacy:
            removed.setdefault(ALL_BOARDS, set()).update(legacy)

        discovered_raw = data.get("discovered", data.get("discovered_apps")) or {}
        discovered = {str(url): DiscoveredApp.from_dict(rec) for url, rec in discovered_raw.items()}

        return cls(
            version=STATE_VERSION,
            first_boot_completed=bool(data.get("first_boot_completed", False)),
            api_key=data.get("api_key") or None,
            removed=removed,
            discovered=discovered,
            last_sync=_parse_ts(data.get("last_sync")),
        )
