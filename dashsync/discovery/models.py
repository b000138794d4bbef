"""
Desired-state records produced by the discovery sources.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

DEFAULT_PRIORITY = 50


class AppKind(Enum):
    """How an app is backed; decides what the container identifier means."""
    CONTAINER = "container"
    EXTERNAL = "external"
    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class LayoutPreference:
    """
    Placement wishes for one app.

    priority: lower is placed first. Conventional ranges are 0-19 system,
    20-39 primary, 40-59 default, 60-79 utility, 80-99 external links.
    x_offset/y_offset are only honored when both are set.
    """
    priority: int = DEFAULT_PRIORITY
    width: int = 1
    height: int = 1
    x_offset: Optional[int] = None
    y_offset: Optional[int] = None

    @property
    def has_explicit_position(self) -> bool:
        return self.x_offset is not None and self.y_offset is not None


@dataclass(frozen=True)
class AppEntry:
    """One app that should appear on the dashboard. `url` is the identity key."""
    name: str
    url: str
    description: Optional[str] = None
    icon_url: Optional[str] = None
    ping_url: Optional[str] = None
    kind: AppKind = AppKind.UNSPECIFIED
    container_id: Optional[str] = None
    category: Optional[str] = None
    hidden: bool = False
    layout: LayoutPreference = field(default_factory=LayoutPreference)
    source: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("app name must not be empty")
        if not self.url:
            raise ValueError("app url must not be empty")
        if self.layout.width <= 0 or self.layout.height <= 0:
            raise ValueError("layout width/height must be >= 1")

    @property
    def priority(self) -> int:
        return self.layout.priority

    @property
    def is_container(self) -> bool:
        return self.kind is AppKind.CONTAINER

    @property
    def is_external(self) -> bool:
        return self.kind is AppKind.EXTERNAL
