"""
Static app registry: one descriptor file per app in a directory.

Descriptor format (TOML shown, the same keys work in YAML)::

    name = "Signal K"
    url = "http://halos.local:3000"
    description = "Marine data server"
    icon_url = "/icons/signalk.png"
    category = "Marine"

    [type]
    container_name = "signalk-server"   # or: external = true

    [layout]
    priority = 25
    width = 2
    height = 2
    x_offset = 0
    y_offset = 0
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

import yaml

from dashsync.core.errors import ConfigError
from dashsync.discovery.models import DEFAULT_PRIORITY, AppEntry, AppKind, LayoutPreference
from dashsync.infra.logging_cfg import log_event

log = logging.getLogger("dashsync")

DESCRIPTOR_SUFFIXES = (".toml", ".yaml", ".yml")


class RegistrySource:
    """Loads AppEntry records from a descriptor directory."""

    def __init__(self, registry_dir: str | Path) -> None:
        self.registry_dir = Path(registry_dir)

    async def load(self) -> List[AppEntry]:
        return load_registry_dir(self.registry_dir)


def load_registry_dir(registry_dir: str | Path) -> List[AppEntry]:
    """
    Load every descriptor in registry_dir, sorted by priority.

    A missing directory yields no apps; a path that exists but is not a
    directory is a ConfigError. Malformed files are logged and skipped.
    """
    path = Path(registry_dir)
    if not path.exists():
        log_event(log, "registry_dir_missing", level=logging.WARNING, path=str(path))
        return []
    if not path.is_dir():
        raise ConfigError(f"Registry path is not a directory: {path}")

    entries: List[AppEntry] = []
    for file_path in sorted(path.iterdir()):
        if file_path.suffix not in DESCRIPTOR_SUFFIXES or not file_path.is_file():
            continue
        try:
            entries.append(load_descriptor(file_path))
        except ConfigError as exc:
            log_event(log, "descriptor_skipped", level=logging.WARNING, path=str(file_path), error=str(exc))

    entries.sort(key=lambda e: e.priority)
    log_event(log, "registry_loaded", count=len(entries), path=str(path))
    return entries


def load_descriptor(file_path: Path) -> AppEntry:
    try:
        if file_path.suffix == ".toml":
            with file_path.open("rb") as fh:
                data = tomllib.load(fh)
        else:
            with file_path.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot parse {file_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{file_path}: descriptor must be a mapping")
    return parse_descriptor(data, source=str(file_path))


def parse_descriptor(data: Dict[str, Any], source: str = "") -> AppEntry:
    name = str(data.get("name") or "").strip()
    url = str(data.get("url") or "").strip()
    if not name:
        raise ConfigError(f"App name is empty in {source}")
    if not url:
        raise ConfigError(f"App URL is empty in {source}")

    app_type = data.get("type") or {}
    layout = data.get("layout") or {}
    if not isinstance(app_type, dict) or not isinstance(layout, dict):
        raise ConfigError(f"{source}: [type] and [layout] must be tables")

    container_name = app_type.get("container_name")
    if container_name:
        kind = AppKind.CONTAINER
    elif app_type.get("external", False):
        kind = AppKind.EXTERNAL
    else:
        kind = AppKind.UNSPECIFIED

    try:
        preference = LayoutPreference(
            priority=int(layout.get("priority", DEFAULT_PRIORITY)),
            width=int(layout.get("width", 1)),
            height=int(layout.get("height", 1)),
            x_offset=_optional_int(layout.get("x_offset")),
            y_offset=_optional_int(layout.get("y_offset")),
        )
        return AppEntry(
            name=name,
            url=url,
            description=_optional_str(data.get("description")),
            icon_url=_optional_str(data.get("icon_url")),
            ping_url=_optional_str(data.get("ping_url")),
            kind=kind,
            container_id=str(container_name) if container_name else None,
            category=_optional_str(data.get("category")),
            hidden=bool(data.get("hidden", False)),
            layout=preference,
            source=source,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{source}: {exc}") from exc


def merge_entries(groups: Iterable[Sequence[AppEntry]]) -> List[AppEntry]:
    """Concatenate sources, keep the first entry per URL, sort by priority (stable)."""
    seen: Dict[str, AppEntry] = {}
    for group in groups:
        for entry in group:
            if entry.url in seen:
                log_event(
                    log, "duplicate_url_ignored", level=logging.DEBUG,
                    url=entry.url, kept=seen[entry.url].source, dropped=entry.source,
                )
                continue
            seen[entry.url] = entry
    return sorted(seen.values(), key=lambda e: e.priority)


async def load_desired_entries(sources: Sequence[Any]) -> List[AppEntry]:
    """
    Load from every source; a failing source contributes nothing.

    This includes ConfigError (say a registry path that is not a directory):
    the other sources still sync.
    """
    groups: List[List[AppEntry]] = []
    for source in sources:
        try:
            groups.append(await source.load())
        except Exception as exc:
            log_event(
                log, "source_load_failed", level=logging.WARNING,
                source=type(source).__name__, error=str(exc),
            )
    return merge_entries(groups)


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
