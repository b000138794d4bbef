"""
Dashboard-side records as returned by the control API.

Parsing is lenient on optional fields and strict on ids: a record without an
id is a protocol error (RemoteProtocol), raised by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RemoteApp:
    id: str
    name: str
    icon_url: str = ""
    href: Optional[str] = None
    description: Optional[str] = None
    ping_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteApp":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            icon_url=str(data.get("iconUrl") or ""),
            href=data.get("href") or None,
            description=data.get("description") or None,
            ping_url=data.get("pingUrl") or None,
        )


@dataclass(frozen=True)
class AppSpec:
    """Payload for app.create / app.update."""
    name: str
    href: str
    icon_url: str
    description: str = ""
    ping_url: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "iconUrl": self.icon_url,
            "href": self.href,
            "pingUrl": self.ping_url,
        }


@dataclass(frozen=True)
class Section:
    id: str
    kind: str = "empty"
    x_offset: int = 0
    y_offset: int = 0
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Section":
        return cls(
            id=str(data["id"]),
            kind=str(data.get("kind", "empty")),
            x_offset=int(data.get("xOffset", 0) or 0),
            y_offset=int(data.get("yOffset", 0) or 0),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        # Sections are written back as received
        out = dict(self.raw)
        out.update({"id": self.id, "kind": self.kind, "xOffset": self.x_offset, "yOffset": self.y_offset})
        return out


@dataclass(frozen=True)
class LayoutTemplate:
    id: str
    name: str = ""
    column_count: int = 12
    breakpoint: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LayoutTemplate":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            column_count=int(data.get("columnCount", 12) or 12),
            breakpoint=int(data.get("breakpoint", 0) or 0),
        )


@dataclass
class ItemLayout:
    """Position of an item inside one layout template and section."""
    layout_id: str
    section_id: str
    x_offset: int
    y_offset: int
    width: int = 1
    height: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemLayout":
        return cls(
            layout_id=str(data.get("layoutId", "")),
            section_id=str(data.get("sectionId", "")),
            x_offset=int(data.get("xOffset", 0) or 0),
            y_offset=int(data.get("yOffset", 0) or 0),
            width=int(data.get("width", 1) or 1),
            height=int(data.get("height", 1) or 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layoutId": self.layout_id,
            "sectionId": self.section_id,
            "width": self.width,
            "height": self.height,
            "xOffset": self.x_offset,
            "yOffset": self.y_offset,
        }


@dataclass
class BoardItem:
    """
    A placed tile. `raw` keeps fields we do not model (integrations, widget
    options, advanced css) so a read-modify-write round trip does not drop them.
    """
    id: str
    app_id: Optional[str]
    layouts: List[ItemLayout] = field(default_factory=list)
    kind: str = "app"
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardItem":
        options = data.get("options") or {}
        return cls(
            id=str(data.get("id", "")),
            app_id=str(options["appId"]) if options.get("appId") is not None else None,
            layouts=[ItemLayout.from_dict(l) for l in data.get("layouts") or []],
            kind=str(data.get("kind", "app")),
            raw=dict(data),
        )

    @classmethod
    def for_app(cls, item_id: str, app_id: str, layout: ItemLayout) -> "BoardItem":
        return cls(id=item_id, app_id=app_id, layouts=[layout])

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.raw)
        options = dict(out.get("options") or {})
        if self.app_id is not None:
            options["appId"] = self.app_id
        out.update({
            "id": self.id,
            "kind": self.kind,
            "options": options,
            "layouts": [l.to_dict() for l in self.layouts],
        })
        out.setdefault("integrationIds", [])
        out.setdefault("advancedOptions", {"customCssClasses": []})
        return out


@dataclass
class Board:
    id: str
    name: str
    sections: List[Section] = field(default_factory=list)
    layouts: List[LayoutTemplate] = field(default_factory=list)
    items: List[BoardItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Board":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            sections=[Section.from_dict(s) for s in data.get("sections") or []],
            layouts=[LayoutTemplate.from_dict(l) for l in data.get("layouts") or []],
            items=[BoardItem.from_dict(i) for i in data.get("items") or []],
        )

    @property
    def first_section_id(self) -> str:
        return self.sections[0].id if self.sections else ""

    @property
    def first_layout(self) -> Optional[LayoutTemplate]:
        return self.layouts[0] if self.layouts else None

    def column_count(self, default: int = 12) -> int:
        layout = self.first_layout
        return layout.column_count if layout else default

    def has_app(self, app_id: str) -> bool:
        return any(item.app_id == app_id for item in self.items)


@dataclass(frozen=True)
class BoardSummary:
    id: str
    name: str
    writable: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoardSummary":
        # Listing marks boards the caller may only view; absent flag means full access
        permissions = data.get("permissions") or {}
        writable = bool(data.get("canModify", permissions.get("hasChangeAccess", True)))
        return cls(id=str(data["id"]), name=str(data.get("name", "")), writable=writable)
