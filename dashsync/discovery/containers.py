"""
Container discovery from Docker labels, over the Engine API unix socket.

A container opts in with `<prefix>.enable=true` and must carry
`<prefix>.name` and `<prefix>.url`. Optional labels: description, icon,
category, ping_url, priority, width, height, hidden.

The event stream is used by the daemon only as a "something changed" trigger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

import httpx

from dashsync.core.json_utils import dumps, loads
from dashsync.discovery.models import DEFAULT_PRIORITY, AppEntry, AppKind, LayoutPreference
from dashsync.infra.logging_cfg import log_event

log = logging.getLogger("dashsync")

WATCHED_ACTIONS = ("start", "stop", "die")
SELF_NAME = "homarr"


@dataclass(frozen=True)
class ContainerEvent:
    action: str
    container_id: str

    @property
    def started(self) -> bool:
        return self.action == "start"


def parse_labels(container_id: str, labels: Mapping[str, str], prefix: str = "homarr") -> Optional[AppEntry]:
    """Build an AppEntry from labels, or None when required labels are missing/invalid."""
    name = labels.get(f"{prefix}.name")
    url = labels.get(f"{prefix}.url")
    if not name or not url:
        return None

    # Compose service names survive container re-creation, raw ids do not
    container_name = labels.get("com.docker.compose.service") or container_id[:12]

    try:
        layout = LayoutPreference(
            priority=int(labels.get(f"{prefix}.priority", DEFAULT_PRIORITY)),
            width=int(labels.get(f"{prefix}.width", 1)),
            height=int(labels.get(f"{prefix}.height", 1)),
        )
        return AppEntry(
            name=name,
            url=url,
            description=labels.get(f"{prefix}.description"),
            icon_url=labels.get(f"{prefix}.icon"),
            ping_url=labels.get(f"{prefix}.ping_url"),
            kind=AppKind.CONTAINER,
            container_id=container_name,
            category=labels.get(f"{prefix}.category"),
            hidden=labels.get(f"{prefix}.hidden", "").lower() in {"1", "true", "yes"},
            layout=layout,
            source=f"container:{container_id[:12]}",
        )
    except ValueError as exc:
        log_event(log, "container_labels_invalid", level=logging.WARNING, container=container_id[:12], error=str(exc))
        return None


def _is_enabled(labels: Mapping[str, str], prefix: str) -> bool:
    if labels.get(f"{prefix}.enable") != "true":
        return False
    # No point linking the dashboard to itself
    if (labels.get(f"{prefix}.name") or "").lower() == SELF_NAME:
        log.debug("skipping dashboard container (self-reference)")
        return False
    return True


class ContainerSource:
    """
    Discovers apps from running containers.

    Usage:
        source = ContainerSource("/var/run/docker.sock", label_prefix="homarr")
        entries = await source.load()
        async for event in source.events():
            ...
    """

    def __init__(
        self,
        socket_path: str = "/var/run/docker.sock",
        label_prefix: str = "homarr",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.label_prefix = label_prefix
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            transport = httpx.AsyncHTTPTransport(uds=socket_path)
            self.client = httpx.AsyncClient(transport=transport, base_url="http://docker", timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def load(self) -> List[AppEntry]:
        resp = await self.client.get("/containers/json", params={"all": "false"})
        resp.raise_for_status()
        entries: List[AppEntry] = []
        for container in resp.json():
            labels: Dict[str, str] = container.get("Labels") or {}
            if not _is_enabled(labels, self.label_prefix):
                continue
            entry = parse_labels(container.get("Id", ""), labels, self.label_prefix)
            if entry is not None:
                entries.append(entry)
        log_event(log, "containers_discovered", count=len(entries))
        return entries

    async def inspect(self, container_id: str) -> Optional[AppEntry]:
        resp = await self.client.get(f"/containers/{container_id}/json")
        resp.raise_for_status()
        labels = (resp.json().get("Config") or {}).get("Labels") or {}
        if not _is_enabled(labels, self.label_prefix):
            return None
        return parse_labels(container_id, labels, self.label_prefix)

    async def events(self) -> AsyncIterator[ContainerEvent]:
        """Yield container start/stop/die events until the stream ends."""
        filters = dumps({"type": ["container"], "event": list(WATCHED_ACTIONS)})
        async with self.client.stream("GET", "/events", params={"filters": filters}, timeout=None) as resp:
            resp.raise_for_status()
            async for line in resp.aiter_lines():
                event = _parse_event(line)
                if event is not None:
                    yield event


def _parse_event(line: str) -> Optional[ContainerEvent]:
    line = line.strip()
    if not line:
        return None
    try:
        raw: Any = loads(line)
    except ValueError:
        log_event(log, "event_unparseable", level=logging.DEBUG, line=line[:200])
        return None
    if not isinstance(raw, dict):
        return None
    action = str(raw.get("Action") or raw.get("status") or "")
    actor = raw.get("Actor")
    if not isinstance(actor, dict):
        actor = {}
    container_id = str(actor.get("ID") or raw.get("id") or "")
    if action not in WATCHED_ACTIONS or not container_id:
        return None
    return ContainerEvent(action=action, container_id=container_id)
