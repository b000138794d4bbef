"""
Tests for grid auto-placement.
"""
import pytest

from dashsync.layout.placement import next_position
from dashsync.remote.models import BoardItem, ItemLayout


def tile(x, y, w=1, h=1, app_id="app"):
    return BoardItem.for_app(f"item-{x}-{y}", app_id, ItemLayout("layout", "section", x, y, w, h))


class TestNextPosition:
    def test_empty_board(self):
        assert next_position([], 12) == (0, 0)

    def test_next_free_column_in_row(self):
        items = [tile(0, 0), tile(1, 0)]
        assert next_position(items, 12) == (2, 0)

    def test_gap_in_last_row_is_used(self):
        items = [tile(0, 0), tile(2, 0)]
        assert next_position(items, 12) == (1, 0)

    def test_full_row_starts_new_row(self):
        items = [tile(x, 0) for x in range(4)]
        assert next_position(items, 4) == (0, 1)

    def test_only_last_row_is_considered(self):
        # Row 0 has free columns but row 1 is the most recent
        items = [tile(0, 0), tile(0, 1), tile(1, 1)]
        assert next_position(items, 12) == (2, 1)

    def test_tall_item_defines_bottom(self):
        items = [tile(0, 0, h=2), tile(1, 0)]
        # Only the tall tile reaches row bottom 2
        assert next_position(items, 12) == (1, 1)

    def test_wide_tile_skips_narrow_gap(self):
        items = [tile(0, 0), tile(2, 0)]
        assert next_position(items, 12, width=2) == (3, 0)

    def test_wide_tile_spans_existing_width(self):
        items = [tile(0, 0, w=3)]
        assert next_position(items, 12) == (3, 0)

    def test_wide_tile_does_not_overflow_row(self):
        items = [tile(x, 0) for x in range(3)]
        assert next_position(items, 4, width=2) == (0, 1)

    def test_items_without_layouts_occupy_nothing(self):
        items = [BoardItem(id="widget", app_id=None, layouts=[])]
        assert next_position(items, 12) == (0, 0)

    @pytest.mark.parametrize("order", [0, 1])
    def test_independent_of_item_order(self, order):
        items = [tile(0, 0), tile(1, 0), tile(3, 0)]
        if order:
            items.reverse()
        assert next_position(items, 12) == (2, 0)

    def test_result_never_overlaps(self):
        items = []
        for n in range(30):
            x, y = next_position(items, 5)
            occupied = {(i.layouts[0].x_offset, i.layouts[0].y_offset) for i in items}
            assert (x, y) not in occupied
            assert 0 <= x < 5
            items.append(tile(x, y, app_id=f"app-{n}"))
