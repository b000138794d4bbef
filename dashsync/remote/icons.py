"""Icon reference -> absolute URL served by the asset server.

The asset server publishes /usr/share/pixmaps under /icons/.
"""

from __future__ import annotations

DEFAULT_ICON = "/icons/docker.svg"
PIXMAPS_PREFIX = "/usr/share/pixmaps/"


def transform_icon_url(icon_path: str | None, asset_server_url: str) -> str:
    """
    - http(s) URLs pass through unchanged
    - /icons/* gets the asset server prefix
    - /usr/share/pixmaps/<f> becomes <asset>/icons/<f>
    - anything else (empty, relative, other absolute paths) falls back to the default icon
    """
    base = asset_server_url.rstrip("/")
    if not icon_path:
        return f"{base}{DEFAULT_ICON}"
    if icon_path.startswith(("http://", "https://")):
        return icon_path
    if icon_path.startswith("/icons/"):
        return f"{base}{icon_path}"
    if icon_path.startswith(PIXMAPS_PREFIX):
        filename = icon_path[len(PIXMAPS_PREFIX):]
        if not filename:
            return f"{base}{DEFAULT_ICON}"
        return f"{base}/icons/{filename}"
    return f"{base}{DEFAULT_ICON}"
