"""Dashboard state and the reducer that owns every transition."""

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from porttop.filters import SortKey, matches_search, sort_ports
from porttop.models import PortGroup, PortInfo


class Modal(Enum):
    """Full-screen overlays; at most one is open."""

    NONE = "none"
    HELP = "help"
    CONFIRM = "confirm"
    LOGS = "logs"
    COMMAND = "command"
    STATS = "stats"


@dataclass(slots=True, frozen=True)
class Toast:
    """Transient message shown above the footer."""

    message: str
    color: str  # 'green', 'red', 'yellow' or 'cyan'
    expires_at: float


@dataclass(slots=True, frozen=True)
class Row:
    """
    One line of the port list.

    A collapsed group is represented by a single row with ``port`` None so it
    can still be selected and expanded again.
    """

    group: PortGroup
    port: PortInfo | None = None
    hidden: int = 0


@dataclass
class DashboardState:
    """Everything the dashboard displays; mutated only by ``reduce``."""

    ports: list[PortInfo] = field(default_factory=list)
    groups: list[PortGroup] = field(default_factory=list)
    collapsed: set[str] = field(default_factory=set)
    selected_index: int = 0
    modal: Modal = Modal.NONE
    modal_content: str | None = None
    confirm_target: PortInfo | None = None
    searching: bool = False
    search_buffer: str = ""
    filter: str = ""
    sort_key: SortKey = SortKey.PORT
    show_details: bool = True
    killing: bool = False
    killing_port: int | None = None
    toast: Toast | None = None
    error: str | None = None
    last_update: float = 0.0
    _rows: list[Row] | None = field(default=None, repr=False, compare=False)

    @property
    def blocking(self) -> bool:
        """Whether a modal or search mode has taken over the keyboard."""
        return self.modal is not Modal.NONE or self.searching

    def rows(self) -> list[Row]:
        """Flattened, filtered rows in display order (memoized)."""
        if self._rows is None:
            self._rows = flatten(self.groups, self.filter)
        return self._rows

    def invalidate_rows(self) -> None:
        """Drop the memoized flattened rows."""
        self._rows = None

    def selected_row(self) -> Row | None:
        """Get the row under the cursor."""
        rows = self.rows()
        if not rows:
            return None
        return rows[min(self.selected_index, len(rows) - 1)]

    def selected_port(self) -> PortInfo | None:
        """Get the port under the cursor, or None on a group header."""
        row = self.selected_row()
        return row.port if row else None


def flatten(groups: list[PortGroup], text: str) -> list[Row]:
    rows: list[Row] = []
    for group in groups:
        members = [p for p in group.ports if matches_search(p, text)]
        if group.collapsed:
            if members:
                rows.append(Row(group=group, hidden=len(members)))
            continue
        rows.extend(Row(group=group, port=port) for port in members)
    return rows


# ----------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class MoveSelection:
    delta: int


@dataclass(slots=True, frozen=True)
class StartSearch:
    pass


@dataclass(slots=True, frozen=True)
class SearchInput:
    char: str


@dataclass(slots=True, frozen=True)
class SearchBackspace:
    pass


@dataclass(slots=True, frozen=True)
class CommitSearch:
    pass


@dataclass(slots=True, frozen=True)
class CancelSearch:
    pass


@dataclass(slots=True, frozen=True)
class Escape:
    pass


@dataclass(slots=True, frozen=True)
class ToggleGroup:
    pass


@dataclass(slots=True, frozen=True)
class ToggleDetails:
    pass


@dataclass(slots=True, frozen=True)
class SetSort:
    key: SortKey


@dataclass(slots=True, frozen=True)
class ToggleHelp:
    pass


@dataclass(slots=True, frozen=True)
class ToggleStats:
    content: str


@dataclass(slots=True, frozen=True)
class OpenModal:
    modal: Modal
    content: str | None = None


@dataclass(slots=True, frozen=True)
class CloseModal:
    pass


@dataclass(slots=True, frozen=True)
class RequestConfirm:
    target: PortInfo
    message: str


@dataclass(slots=True, frozen=True)
class SnapshotLoaded:
    ports: list[PortInfo]
    groups: list[PortGroup]
    timestamp: float


@dataclass(slots=True, frozen=True)
class SnapshotFailed:
    message: str


@dataclass(slots=True, frozen=True)
class KillStarted:
    port: int


@dataclass(slots=True, frozen=True)
class KillFinished:
    pass


@dataclass(slots=True, frozen=True)
class ShowToast:
    toast: Toast


@dataclass(slots=True, frozen=True)
class ExpireToast:
    now: float


Action = (
    MoveSelection
    | StartSearch
    | SearchInput
    | SearchBackspace
    | CommitSearch
    | CancelSearch
    | Escape
    | ToggleGroup
    | ToggleDetails
    | SetSort
    | ToggleHelp
    | ToggleStats
    | OpenModal
    | CloseModal
    | RequestConfirm
    | SnapshotLoaded
    | SnapshotFailed
    | KillStarted
    | KillFinished
    | ShowToast
    | ExpireToast
)

_REDUCERS: dict[type, Callable[[DashboardState, Action], None]] = {}


def _handles(action_type: type):
    def register(func):
        _REDUCERS[action_type] = func
        return func

    return register


def reduce(state: DashboardState, action: Action) -> DashboardState:
    """Apply ``action`` to ``state`` in place and return it."""
    _REDUCERS[type(action)](state, action)
    return state


def _clamp_selection(state: DashboardState) -> None:
    count = len(state.rows())
    if state.selected_index >= count:
        state.selected_index = max(0, count - 1)


def _set_filter(state: DashboardState, text: str) -> None:
    state.filter = text
    state.invalidate_rows()
    _clamp_selection(state)


def _close_modal(state: DashboardState) -> None:
    state.modal = Modal.NONE
    state.modal_content = None
    state.confirm_target = None


def _apply_groups(state: DashboardState, groups: list[PortGroup]) -> None:
    state.groups = [
        replace(
            group,
            ports=sort_ports(group.ports, state.sort_key),
            collapsed=group.id in state.collapsed,
        )
        for group in groups
    ]
    state.invalidate_rows()
    _clamp_selection(state)


@_handles(MoveSelection)
def _move_selection(state: DashboardState, action: MoveSelection) -> None:
    if state.blocking:
        return
    count = len(state.rows())
    if count == 0:
        return
    index = state.selected_index + action.delta
    if index < 0:
        index = count - 1
    elif index >= count:
        index = 0
    state.selected_index = index


@_handles(StartSearch)
def _start_search(state: DashboardState, action: StartSearch) -> None:
    if state.blocking:
        return
    state.searching = True
    state.search_buffer = state.filter


@_handles(SearchInput)
def _search_input(state: DashboardState, action: SearchInput) -> None:
    if not state.searching or not (len(action.char) == 1 and action.char.isdigit()):
        return
    state.search_buffer += action.char
    _set_filter(state, state.search_buffer)


@_handles(SearchBackspace)
def _search_backspace(state: DashboardState, action: SearchBackspace) -> None:
    if not state.searching:
        return
    state.search_buffer = state.search_buffer[:-1]
    _set_filter(state, state.search_buffer)


@_handles(CommitSearch)
def _commit_search(state: DashboardState, action: CommitSearch) -> None:
    state.searching = False


@_handles(CancelSearch)
def _cancel_search(state: DashboardState, action: CancelSearch) -> None:
    if not state.searching:
        return
    state.searching = False
    state.search_buffer = ""
    _set_filter(state, "")


@_handles(Escape)
def _escape(state: DashboardState, action: Escape) -> None:
    if state.searching:
        _cancel_search(state, CancelSearch())
    elif state.modal is not Modal.NONE:
        _close_modal(state)


@_handles(ToggleGroup)
def _toggle_group(state: DashboardState, action: ToggleGroup) -> None:
    if state.blocking:
        return
    row = state.selected_row()
    if row is None:
        return
    group_id = row.group.id
    if group_id in state.collapsed:
        state.collapsed.discard(group_id)
    else:
        state.collapsed.add(group_id)

    state.groups = [replace(g, collapsed=g.id in state.collapsed) for g in state.groups]
    state.invalidate_rows()

    # Keep the cursor on the toggled group
    for index, candidate in enumerate(state.rows()):
        if candidate.group.id == group_id:
            state.selected_index = index
            break
    _clamp_selection(state)


@_handles(ToggleDetails)
def _toggle_details(state: DashboardState, action: ToggleDetails) -> None:
    if state.blocking:
        return
    state.show_details = not state.show_details


@_handles(SetSort)
def _set_sort(state: DashboardState, action: SetSort) -> None:
    if state.blocking:
        return
    state.sort_key = action.key
    _apply_groups(state, state.groups)


@_handles(ToggleHelp)
def _toggle_help(state: DashboardState, action: ToggleHelp) -> None:
    if state.modal is Modal.HELP:
        _close_modal(state)
    elif not state.blocking:
        state.modal = Modal.HELP


@_handles(ToggleStats)
def _toggle_stats(state: DashboardState, action: ToggleStats) -> None:
    if state.modal is Modal.STATS:
        _close_modal(state)
    elif not state.blocking:
        state.modal = Modal.STATS
        state.modal_content = action.content


@_handles(OpenModal)
def _open_modal(state: DashboardState, action: OpenModal) -> None:
    if state.blocking:
        return
    state.modal = action.modal
    state.modal_content = action.content


@_handles(CloseModal)
def _close(state: DashboardState, action: CloseModal) -> None:
    _close_modal(state)


@_handles(RequestConfirm)
def _request_confirm(state: DashboardState, action: RequestConfirm) -> None:
    if state.blocking:
        return
    state.modal = Modal.CONFIRM
    state.modal_content = action.message
    state.confirm_target = action.target


@_handles(SnapshotLoaded)
def _snapshot_loaded(state: DashboardState, action: SnapshotLoaded) -> None:
    state.ports = list(action.ports)
    state.last_update = action.timestamp
    state.error = None
    _apply_groups(state, action.groups)


@_handles(SnapshotFailed)
def _snapshot_failed(state: DashboardState, action: SnapshotFailed) -> None:
    state.error = action.message


@_handles(KillStarted)
def _kill_started(state: DashboardState, action: KillStarted) -> None:
    state.killing = True
    state.killing_port = action.port


@_handles(KillFinished)
def _kill_finished(state: DashboardState, action: KillFinished) -> None:
    state.killing = False
    state.killing_port = None


@_handles(ShowToast)
def _show_toast(state: DashboardState, action: ShowToast) -> None:
    state.toast = action.toast


@_handles(ExpireToast)
def _expire_toast(state: DashboardState, action: ExpireToast) -> None:
    if state.toast is not None and action.now >= state.toast.expires_at:
        state.toast = None
