"""
Remote package.

Dashboard control API client and its record types.
"""

from dashsync.remote.board_client import BoardClient
from dashsync.remote.icons import DEFAULT_ICON, transform_icon_url
from dashsync.remote.models import (
    AppSpec,
    Board,
    BoardItem,
    BoardSummary,
    ItemLayout,
    LayoutTemplate,
    RemoteApp,
    Section,
)

__all__ = [
    "AppSpec",
    "Board",
    "BoardClient",
    "BoardItem",
    "BoardSummary",
    "DEFAULT_ICON",
    "ItemLayout",
    "LayoutTemplate",
    "RemoteApp",
    "Section",
    "transform_icon_url",
]
