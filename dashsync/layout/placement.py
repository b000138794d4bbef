"""
Grid auto-placement for tiles without explicit coordinates.

Greedy, top-to-bottom then left-to-right, and only ever looking at the most
recent row: gaps in earlier rows are not backfilled. Pure and deterministic;
the result depends on the set of occupied cells, not on item order.
"""

from __future__ import annotations

from typing import Iterable, Set, Tuple

from dashsync.remote.models import BoardItem


def next_position(
    items: Iterable[BoardItem],
    column_count: int,
    width: int = 1,
) -> Tuple[int, int]:
    """
    Return (x, y) for a new tile.

    max_y is the largest row bottom (y + height) over every item layout. The
    columns occupied by layouts whose bottom equals max_y form the "last row".
    The first column x whose span x..x+width-1 fits the board and is free in
    that row wins, at y = max(max_y - 1, 0). A full row starts a new one at
    (0, max_y). Items without layouts occupy nothing.

    A tall new tile needs no extra check: nothing sits below max_y.
    """
    max_y = 0
    last_row: Set[int] = set()

    for item in items:
        for layout in item.layouts:
            bottom = layout.y_offset + layout.height
            if bottom > max_y:
                max_y = bottom
                last_row.clear()
            if bottom == max_y:
                last_row.update(range(layout.x_offset, layout.x_offset + layout.width))

    for x in range(0, column_count - width + 1):
        if not any(col in last_row for col in range(x, x + width)):
            return x, max(max_y - 1, 0)

    return 0, max_y
