"""Tests for the dashboard reducer."""

import pytest

from conftest import make_port
from porttop.filters import SortKey
from porttop.models import PortGroup
from porttop.state import (
    CancelSearch,
    CloseModal,
    CommitSearch,
    DashboardState,
    Escape,
    ExpireToast,
    KillFinished,
    KillStarted,
    Modal,
    MoveSelection,
    OpenModal,
    RequestConfirm,
    SearchBackspace,
    SearchInput,
    SetSort,
    ShowToast,
    SnapshotFailed,
    SnapshotLoaded,
    StartSearch,
    Toast,
    ToggleDetails,
    ToggleGroup,
    ToggleHelp,
    ToggleStats,
    reduce,
)


def loaded_state(*groups: PortGroup) -> DashboardState:
    state = DashboardState()
    ports = [p for g in groups for p in g.ports]
    return reduce(state, SnapshotLoaded(ports, list(groups), 1.0))


@pytest.fixture
def state() -> DashboardState:
    return loaded_state(
        PortGroup("database", "database", [make_port(5432, 1, "postgres")]),
        PortGroup(
            "dev-server",
            "dev-server",
            [make_port(3000, 2, "node", command="vite"), make_port(5173, 3, "node", command="vite")],
        ),
    )


class TestSelection:
    """Tests for circular selection."""

    def test_wraps_both_ways(self, state):
        """Test moving past either end wraps around."""
        reduce(state, MoveSelection(-1))
        assert state.selected_index == 2

        reduce(state, MoveSelection(1))
        assert state.selected_index == 0

    def test_empty_list_is_noop(self):
        """Test selection on an empty list stays put."""
        state = DashboardState()
        reduce(state, MoveSelection(1))
        assert state.selected_index == 0
        assert state.selected_port() is None

    def test_selection_clamped_when_rows_shrink(self, state):
        """Test a smaller snapshot pulls the selection back in range."""
        state.selected_index = 2
        reduce(state, SnapshotLoaded([], [PortGroup("api", "api", [make_port(8000)])], 2.0))
        assert state.selected_index == 0


class TestSearch:
    """Tests for search mode."""

    def test_digits_filter_live(self, state):
        """Test typed digits narrow the rows immediately."""
        reduce(state, StartSearch())
        reduce(state, SearchInput("5"))
        reduce(state, SearchInput("1"))

        assert state.filter == "51"
        assert [r.port.port for r in state.rows()] == [5173]

    def test_non_digits_ignored(self, state):
        """Test only digits are accepted in the search buffer."""
        reduce(state, StartSearch())
        reduce(state, SearchInput("a"))
        assert state.search_buffer == ""

    def test_backspace(self, state):
        """Test backspace removes the last digit and widens the filter."""
        reduce(state, StartSearch())
        reduce(state, SearchInput("5"))
        reduce(state, SearchInput("4"))
        reduce(state, SearchBackspace())

        assert state.filter == "5"
        assert len(state.rows()) == 2

    def test_commit_keeps_filter(self, state):
        """Test enter leaves search mode with the filter applied."""
        reduce(state, StartSearch())
        reduce(state, SearchInput("3"))
        reduce(state, CommitSearch())

        assert not state.searching
        assert state.filter == "3"

    def test_escape_clears_filter(self, state):
        """Test escape cancels search and restores the full list."""
        reduce(state, StartSearch())
        reduce(state, SearchInput("3"))
        reduce(state, Escape())

        assert not state.searching
        assert state.filter == ""
        assert len(state.rows()) == 3

    def test_navigation_blocked_while_searching(self, state):
        """Test arrow keys do nothing in search mode."""
        reduce(state, StartSearch())
        reduce(state, MoveSelection(1))
        assert state.selected_index == 0

    def test_search_starts_from_committed_filter(self, state):
        """Test reopening search edits the current filter."""
        reduce(state, StartSearch())
        reduce(state, SearchInput("5"))
        reduce(state, CommitSearch())
        reduce(state, StartSearch())
        assert state.search_buffer == "5"

        reduce(state, CancelSearch())
        assert state.filter == ""


class TestModals:
    """Tests for modal exclusivity."""

    def test_help_toggles(self, state):
        """Test ? opens and closes help."""
        reduce(state, ToggleHelp())
        assert state.modal is Modal.HELP
        reduce(state, ToggleHelp())
        assert state.modal is Modal.NONE

    def test_one_modal_at_a_time(self, state):
        """Test another modal cannot open over an open one."""
        reduce(state, ToggleHelp())
        reduce(state, OpenModal(Modal.COMMAND, "node a.js"))
        reduce(state, ToggleStats("stats"))

        assert state.modal is Modal.HELP

    def test_stats_closes_itself(self, state):
        """Test the stats key is accepted while its own modal is open."""
        reduce(state, ToggleStats("Total kills: 0"))
        assert state.modal is Modal.STATS
        assert state.modal_content == "Total kills: 0"

        reduce(state, ToggleStats("ignored"))
        assert state.modal is Modal.NONE
        assert state.modal_content is None

    def test_no_search_over_modal(self, state):
        """Test search cannot start while a modal is open."""
        reduce(state, OpenModal(Modal.LOGS, "details"))
        reduce(state, StartSearch())
        assert not state.searching

    def test_escape_closes_modal(self, state):
        """Test escape dismisses any modal."""
        reduce(state, OpenModal(Modal.COMMAND, "node a.js"))
        reduce(state, Escape())
        assert state.modal is Modal.NONE

    def test_confirm_holds_target(self, state):
        """Test RequestConfirm records the port to act on."""
        target = state.selected_port()
        reduce(state, RequestConfirm(target, "Force kill?"))

        assert state.modal is Modal.CONFIRM
        assert state.confirm_target == target

        reduce(state, CloseModal())
        assert state.confirm_target is None


class TestGroupsAndSort:
    """Tests for collapse, details and sort."""

    def test_collapse_and_expand(self, state):
        """Test a collapsed group shows one summary row and can be expanded."""
        reduce(state, MoveSelection(1))
        reduce(state, ToggleGroup())

        rows = state.rows()
        assert len(rows) == 2
        assert rows[1].port is None
        assert rows[1].hidden == 2
        assert state.selected_index == 1

        reduce(state, ToggleGroup())
        assert len(state.rows()) == 3

    def test_collapse_survives_refresh(self, state):
        """Test collapsed groups stay collapsed after a new snapshot."""
        reduce(state, ToggleGroup())
        reduce(state, SnapshotLoaded(state.ports, list(state.groups), 2.0))

        assert state.rows()[0].port is None

    def test_toggle_details(self, state):
        """Test d flips detail visibility."""
        reduce(state, ToggleDetails())
        assert not state.show_details

    def test_sort_reorders_within_groups(self, state):
        """Test a new sort key applies to every group."""
        reduce(state, SetSort(SortKey.PID))
        state.groups[1].ports.reverse()
        reduce(state, SetSort(SortKey.PID))

        assert [p.pid for p in state.groups[1].ports] == [2, 3]
        assert state.sort_key is SortKey.PID


class TestLifecycle:
    """Tests for snapshot, kill and toast transitions."""

    def test_snapshot_failure_keeps_ports(self, state):
        """Test a failed refresh records the error and keeps the snapshot."""
        reduce(state, SnapshotFailed("lsof: permission denied"))

        assert state.error == "lsof: permission denied"
        assert len(state.rows()) == 3

        reduce(state, SnapshotLoaded(state.ports, list(state.groups), 3.0))
        assert state.error is None

    def test_kill_flags(self, state):
        """Test the killing flag and target port."""
        reduce(state, KillStarted(3000))
        assert state.killing and state.killing_port == 3000

        reduce(state, KillFinished())
        assert not state.killing and state.killing_port is None

    def test_toast_expiry(self, state):
        """Test a toast disappears once its expiry time is reached."""
        reduce(state, ShowToast(Toast("Killed", "green", 10.0)))

        reduce(state, ExpireToast(9.9))
        assert state.toast is not None

        reduce(state, ExpireToast(10.0))
        assert state.toast is None
