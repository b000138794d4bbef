"""
Tests for Reconciler.
"""
import pytest

from conftest import FakeDashboard, StaticSource, make_entry, placed
from dashsync.auth.credentials import CredentialManager
from dashsync.config.branding import parse_branding
from dashsync.core.errors import AuthRejected
from dashsync.discovery.registry import RegistrySource
from dashsync.reconcile.reconciler import Reconciler, ReconcilerConfig
from dashsync.remote.models import RemoteApp
from dashsync.state.state import AtomicStateStore


def build(dashboard, branding, tmp_path, entries, scope="default", auth_mode="session"):
    store = AtomicStateStore(tmp_path / "state.json")
    credentials = CredentialManager(
        dashboard, store, auth_mode, "admin", "s3cret", tmp_path / "bootstrap.key",
    )
    return Reconciler(
        client=dashboard,
        store=store,
        credentials=credentials,
        sources=[StaticSource(entries)],
        branding=branding,
        config=ReconcilerConfig(board_scope=scope, asset_server_url="http://assets:8771"),
    )


async def mark_booted(reconciler):
    state = await reconciler.store.load()
    state.first_boot_completed = True
    await reconciler.store.save(state)


class TestFirstCycle:
    """First run against a fresh dashboard."""

    @pytest.mark.asyncio
    async def test_onboarding_board_and_apps(self, branding, tmp_path):
        dashboard = FakeDashboard(onboarding_steps=["user", "finish"])
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("Signal K", "http://halos.local:3000", priority=10),
        ])

        result = await reconciler.run_cycle()

        assert len(dashboard.calls_to("create_initial_user")) == 1
        assert dashboard.calls_to("advance_onboarding") == []
        assert dashboard.calls_to("create_board") == [("create_board", "Home")]
        board = dashboard.board_named("Home")
        assert dashboard.home_board == board.id
        assert dashboard.color_scheme == "dark"
        assert result.apps_created == 1
        assert result.items_placed == 1
        app = dashboard.app_by_href("http://halos.local:3000")
        assert board.has_app(app.id)

        state = await reconciler.store.load()
        assert state.first_boot_completed is True
        assert state.last_sync is not None

    @pytest.mark.asyncio
    async def test_setup_not_repeated(self, dashboard, branding, tmp_path):
        reconciler = build(dashboard, branding, tmp_path, [])
        await reconciler.run_cycle()
        await reconciler.run_cycle()
        assert len(dashboard.calls_to("get_onboarding_step")) == 1
        assert len(dashboard.calls_to("login")) == 2

    @pytest.mark.asyncio
    async def test_pinned_tile_placed_at_its_position(self, dashboard, tmp_path):
        branding = parse_branding({
            "credentials": {"admin_username": "admin", "admin_password": "pw"},
            "board": {
                "name": "Home",
                "pinned": {
                    "enabled": True, "name": "Cockpit", "href": "http://halos.local:9090",
                    "width": 2, "height": 1, "x_offset": 3, "y_offset": 0,
                },
            },
        })
        reconciler = build(dashboard, branding, tmp_path, [])
        await reconciler.setup()

        board = dashboard.board_named("Home")
        app = dashboard.app_by_href("http://halos.local:9090")
        layout = placed(board, app.id)
        assert (layout.x_offset, layout.y_offset, layout.width) == (3, 0, 2)
        # External tiles carry no health check
        assert app.ping_url is None


class TestPlacementOrder:
    @pytest.mark.asyncio
    async def test_priority_order_fills_row(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        # Source order differs from priority order
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("B", "http://b.local", priority=20),
            make_entry("A", "http://a.local", priority=10),
        ])
        await reconciler.run_cycle()

        board = dashboard.board_named("Home")
        a = dashboard.app_by_href("http://a.local")
        b = dashboard.app_by_href("http://b.local")
        la, lb = placed(board, a.id), placed(board, b.id)
        assert (la.x_offset, la.y_offset) == (0, 0)
        assert (lb.x_offset, lb.y_offset) == (1, 0)

    @pytest.mark.asyncio
    async def test_explicit_position_honored(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("Fixed", "http://fixed.local", x_offset=5, y_offset=2),
        ])
        await reconciler.run_cycle()
        app = dashboard.app_by_href("http://fixed.local")
        layout = placed(dashboard.board_named("Home"), app.id)
        assert (layout.x_offset, layout.y_offset) == (5, 2)

    @pytest.mark.asyncio
    async def test_hidden_entries_skipped(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("Secret", "http://secret.local", hidden=True),
        ])
        result = await reconciler.run_cycle()
        assert result.entries_seen == 0
        assert dashboard.apps == {}

    @pytest.mark.asyncio
    async def test_icon_rewritten_to_asset_server(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("Grafana", "http://grafana.local", icon_url="/usr/share/pixmaps/grafana.png"),
        ])
        await reconciler.run_cycle()
        app = dashboard.app_by_href("http://grafana.local")
        assert app.icon_url == "http://assets:8771/icons/grafana.png"
        assert app.ping_url == "http://grafana.local"


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_second_cycle_changes_nothing(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        entries = [make_entry("A", "http://a.local"), make_entry("B", "http://b.local")]
        reconciler = build(dashboard, branding, tmp_path, entries)

        await reconciler.run_cycle()
        saves_after_first = len(dashboard.calls_to("save_board_items"))
        second = await reconciler.run_cycle()

        assert len(dashboard.apps) == 2
        assert len(dashboard.board_named("Home").items) == 2
        assert second.apps_created == 0
        assert second.apps_updated == 0
        assert second.items_placed == 0
        assert len(dashboard.calls_to("save_board_items")) == saves_after_first

    @pytest.mark.asyncio
    async def test_changed_metadata_updates_in_place(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        source_entries = [make_entry("Old name", "http://a.local")]
        reconciler = build(dashboard, branding, tmp_path, source_entries)
        await reconciler.run_cycle()
        app_id = dashboard.app_by_href("http://a.local").id

        source_entries[0] = make_entry("New name", "http://a.local")
        result = await reconciler.run_cycle()

        assert result.apps_updated == 1
        assert dashboard.apps[app_id].name == "New name"
        assert len(dashboard.apps) == 1

    @pytest.mark.asyncio
    async def test_duplicate_url_created_once(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("First", "http://same.local", priority=1),
            make_entry("Second", "http://same.local", priority=2),
        ])
        await reconciler.run_cycle()
        assert len(dashboard.apps) == 1
        assert dashboard.app_by_href("http://same.local").name == "First"


class TestUserRemoval:
    @pytest.mark.asyncio
    async def test_removal_is_per_board(self, dashboard, branding, tmp_path):
        dashboard.add_board("A")
        dashboard.add_board("B")
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")], scope="writable")

        await reconciler.run_cycle()
        app_id = dashboard.app_by_href("http://app.local").id
        board_b = dashboard.board_named("B")
        dashboard.delete_tile("B", app_id)

        second = await reconciler.run_cycle()
        assert second.removals_detected == 1
        state = await reconciler.store.load()
        assert state.is_removed(board_b.id, "http://app.local")
        assert not state.is_removed(dashboard.board_named("A").id, "http://app.local")

        third = await reconciler.run_cycle()
        assert third.items_placed == 0
        assert not dashboard.board_named("B").has_app(app_id)
        assert dashboard.board_named("A").has_app(app_id)

    @pytest.mark.asyncio
    async def test_new_board_still_gets_removed_app(self, dashboard, branding, tmp_path):
        dashboard.add_board("A")
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")], scope="writable")
        await reconciler.run_cycle()
        app_id = dashboard.app_by_href("http://app.local").id
        dashboard.delete_tile("A", app_id)
        await reconciler.run_cycle()

        dashboard.add_board("C")
        result = await reconciler.run_cycle()
        assert result.items_placed == 1
        assert dashboard.board_named("C").has_app(app_id)

    @pytest.mark.asyncio
    async def test_read_only_boards_ignored(self, dashboard, branding, tmp_path):
        dashboard.add_board("Mine")
        dashboard.add_board("Theirs", writable=False)
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")], scope="writable")
        result = await reconciler.run_cycle()
        assert "Theirs" not in result.boards
        assert dashboard.board_named("Theirs").items == []

    @pytest.mark.asyncio
    async def test_app_listing_failure_is_not_a_removal(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")])
        await reconciler.run_cycle()
        board_id = dashboard.board_named("Home").id

        dashboard.fail_app_listing = True
        second = await reconciler.run_cycle()

        assert second.removals_detected == 0
        assert second.items_placed == 0
        assert len(dashboard.board_named("Home").items) == 1
        state = await reconciler.store.load()
        assert not state.is_removed(board_id, "http://app.local")

        dashboard.fail_app_listing = False
        third = await reconciler.run_cycle()
        assert third.removals_detected == 0
        assert third.items_placed == 0

    @pytest.mark.asyncio
    async def test_tile_for_other_app_with_same_url_counts_as_present(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")])
        await reconciler.run_cycle()

        dashboard.apps["app-copy"] = RemoteApp(id="app-copy", name="App (copy)", href="http://app.local")
        board = dashboard.board_named("Home")
        board.items[0].app_id = "app-copy"

        second = await reconciler.run_cycle()
        assert second.removals_detected == 0
        assert second.items_placed == 0
        state = await reconciler.store.load()
        assert not state.is_removed(board.id, "http://app.local")

    @pytest.mark.asyncio
    async def test_item_ids_unique_across_boards(self, dashboard, branding, tmp_path):
        dashboard.add_board("A")
        dashboard.add_board("B")
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("App", "http://app.local"),
            make_entry("Other", "http://other.local"),
        ], scope="writable")
        result = await reconciler.run_cycle()

        ids = [item.id for board in dashboard.boards.values() for item in board.items]
        assert result.items_placed == len(ids)
        assert len(ids) >= 4
        assert len(set(ids)) == len(ids)


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failing_entry_does_not_stop_others(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        dashboard.fail_upsert_for.add("http://bad.local")
        reconciler = build(dashboard, branding, tmp_path, [
            make_entry("Bad", "http://bad.local", priority=1),
            make_entry("Good", "http://good.local", priority=2),
        ])

        result = await reconciler.run_cycle()

        assert result.entries_failed == 1
        assert result.items_placed == 1
        good = dashboard.app_by_href("http://good.local")
        layout = placed(dashboard.board_named("Home"), good.id)
        assert (layout.x_offset, layout.y_offset) == (0, 0)

    @pytest.mark.asyncio
    async def test_no_target_boards_skips_cycle(self, dashboard, branding, tmp_path):
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")], scope="writable")
        await mark_booted(reconciler)
        result = await reconciler.run_cycle()
        assert result.skipped_reason == "no_target_boards"
        assert dashboard.calls_to("upsert_app") == []

    @pytest.mark.asyncio
    async def test_board_listing_failure_degrades(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        dashboard.fail_board_listing = True
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")], scope="writable")
        result = await reconciler.run_cycle()
        assert result.skipped_reason == "no_target_boards"

    @pytest.mark.asyncio
    async def test_app_listing_failure_still_syncs(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        dashboard.fail_app_listing = True
        reconciler = build(dashboard, branding, tmp_path, [make_entry("App", "http://app.local")])
        result = await reconciler.run_cycle()
        assert result.apps_created == 1
        assert result.items_placed == 1

    @pytest.mark.asyncio
    async def test_bad_registry_path_does_not_stop_other_sources(self, dashboard, branding, tmp_path):
        dashboard.add_board("Home")
        not_a_dir = tmp_path / "webapps.d"
        not_a_dir.write_text("oops")
        reconciler = build(dashboard, branding, tmp_path, [])
        reconciler.sources = [RegistrySource(not_a_dir), StaticSource([make_entry("App", "http://app.local")])]

        result = await reconciler.run_cycle()

        assert result.entries_seen == 1
        assert result.items_placed == 1
        assert dashboard.board_named("Home").has_app(dashboard.app_by_href("http://app.local").id)

    @pytest.mark.asyncio
    async def test_missing_credential_propagates(self, dashboard, branding, tmp_path):
        reconciler = build(dashboard, branding, tmp_path, [], auth_mode="api_key")
        with pytest.raises(AuthRejected):
            await reconciler.run_cycle()
