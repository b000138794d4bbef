"""Load the branding document (admin credentials, default board, server settings) from YAML.

Path comes from `Settings.branding_file`. Unlike optional override files a
missing or malformed branding file is a ConfigError: first-boot setup cannot
create the admin user without it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dashsync.core.errors import ConfigError
from dashsync.discovery.models import AppEntry, AppKind, LayoutPreference


@dataclass(frozen=True)
class Credentials:
    admin_username: str
    admin_password: str


@dataclass(frozen=True)
class PinnedTile:
    """App that first-boot setup places on the default board at a fixed position."""
    enabled: bool = False
    name: str = ""
    description: str = ""
    href: str = ""
    icon_url: str = ""
    width: int = 1
    height: int = 1
    x_offset: int = 0
    y_offset: int = 0

    def to_entry(self) -> AppEntry:
        return AppEntry(
            name=self.name,
            url=self.href,
            description=self.description or None,
            icon_url=self.icon_url or None,
            kind=AppKind.EXTERNAL,
            layout=LayoutPreference(
                priority=0,
                width=self.width,
                height=self.height,
                x_offset=self.x_offset,
                y_offset=self.y_offset,
            ),
            source="branding:pinned",
        )


@dataclass(frozen=True)
class BoardConfig:
    name: str
    column_count: int = 12
    is_public: bool = True
    pinned: PinnedTile = field(default_factory=PinnedTile)


@dataclass(frozen=True)
class ServerSettings:
    enable_general: bool = False
    enable_widget_data: bool = False
    enable_integration_data: bool = False
    enable_user_data: bool = False
    no_index: bool = True
    no_follow: bool = True
    no_translate: bool = True
    no_sitelinks_search_box: bool = True

    def to_payload(self) -> Dict[str, Any]:
        """Shape expected by serverSettings.initSettings."""
        return {
            "analytics": {
                "enableGeneral": self.enable_general,
                "enableWidgetData": self.enable_widget_data,
                "enableIntegrationData": self.enable_integration_data,
                "enableUserData": self.enable_user_data,
            },
            "crawlingAndIndexing": {
                "noIndex": self.no_index,
                "noFollow": self.no_follow,
                "noTranslate": self.no_translate,
                "noSiteLinksSearchBox": self.no_sitelinks_search_box,
            },
        }


@dataclass(frozen=True)
class Branding:
    credentials: Credentials
    board: BoardConfig
    settings: ServerSettings = field(default_factory=ServerSettings)
    color_scheme: str = "light"


def load_branding(path: str | Path) -> Branding:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Branding config not found at {p}")
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Branding config {p} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Branding config {p} must be a mapping")
    return parse_branding(data, origin=str(p))


def parse_branding(data: Dict[str, Any], origin: str = "<branding>") -> Branding:
    creds = _section(data, "credentials", origin)
    board = _section(data, "board", origin)
    settings = data.get("settings") or {}
    analytics = settings.get("analytics") or {}
    crawling = settings.get("crawling") or {}
    theme = data.get("theme") or {}

    username = str(creds.get("admin_username") or "")
    password = str(creds.get("admin_password") or "")
    if not username or not password:
        raise ConfigError(f"{origin}: credentials.admin_username and admin_password are required")

    board_name = str(board.get("name") or "")
    if not board_name:
        raise ConfigError(f"{origin}: board.name is required")

    pinned_raw = board.get("pinned") or board.get("cockpit") or {}
    try:
        pinned = PinnedTile(
            enabled=bool(pinned_raw.get("enabled", False)),
            name=str(pinned_raw.get("name", "")),
            description=str(pinned_raw.get("description", "")),
            href=str(pinned_raw.get("href", "")),
            icon_url=str(pinned_raw.get("icon_url", "")),
            width=int(pinned_raw.get("width", 1)),
            height=int(pinned_raw.get("height", 1)),
            x_offset=int(pinned_raw.get("x_offset", 0)),
            y_offset=int(pinned_raw.get("y_offset", 0)),
        )
        column_count = int(board.get("column_count", 12))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{origin}: invalid board layout value: {exc}") from exc
    if pinned.enabled and (not pinned.name or not pinned.href):
        raise ConfigError(f"{origin}: board.pinned needs name and href when enabled")
    if column_count <= 0:
        raise ConfigError(f"{origin}: board.column_count must be > 0")

    return Branding(
        credentials=Credentials(admin_username=username, admin_password=password),
        board=BoardConfig(
            name=board_name,
            column_count=column_count,
            is_public=bool(board.get("is_public", True)),
            pinned=pinned,
        ),
        settings=ServerSettings(
            enable_general=bool(analytics.get("enable_general", False)),
            enable_widget_data=bool(analytics.get("enable_widget_data", False)),
            enable_integration_data=bool(analytics.get("enable_integration_data", False)),
            enable_user_data=bool(analytics.get("enable_user_data", False)),
            no_index=bool(crawling.get("no_index", True)),
            no_follow=bool(crawling.get("no_follow", True)),
            no_translate=bool(crawling.get("no_translate", True)),
            no_sitelinks_search_box=bool(crawling.get("no_sitelinks_search_box", True)),
        ),
        color_scheme=str(theme.get("default_color_scheme", "light")),
    )


def _section(data: Dict[str, Any], key: str, origin: str) -> Dict[str, Any]:
    value: Optional[Any] = data.get(key)
    if not isinstance(value, dict):
        raise ConfigError(f"{origin}: missing [{key}] section")
    return value
