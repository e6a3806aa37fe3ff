"""Terminal painting with delta repaints for the browsing view."""

import shutil
import sys
import textwrap
from dataclasses import dataclass
from typing import TextIO

from rich.color import ColorSystem
from rich.style import Style

from porttop.actions import format_lifetime
from porttop.filters import SortKey
from porttop.state import DashboardState, Modal, Row

# Row layout: selector, port, process, type, pid, protocol, user, lifetime, command
COLUMNS = {
    "port": (2, 5),
    "process": (9, 19),
    "type": (28, 12),
    "pid": (41, 10),
    "protocol": (52, 6),
    "user": (59, 10),
    "lifetime": (70, 10),
}
COMMAND_COLUMN = 81
FIRST_ROW_LINE = 2

STYLES = {
    "title": Style.parse("bold white on blue"),
    "selector": Style.parse("bold yellow"),
    "port": Style.parse("bright_cyan"),
    "process": Style.parse("white"),
    "muted": Style.parse("bright_black"),
    "command": Style.parse("dim bright_black"),
    "rule": Style.parse("dim bright_black"),
    "killing": Style.parse("bold yellow"),
    "warning": Style.parse("yellow"),
    "error": Style.parse("bold red"),
    "count": Style.parse("cyan"),
    "detail": Style.parse("bright_cyan"),
    "key": Style.parse("yellow"),
    "group": Style.parse("bold magenta"),
}

CATEGORY_STYLES = {
    "dev-server": Style.parse("green"),
    "api": Style.parse("blue"),
    "database": Style.parse("yellow"),
    "storybook": Style.parse("magenta"),
    "testing": Style.parse("cyan"),
    "unexpected": Style.parse("red"),
    "system": Style.parse("bright_black"),
}

TOAST_STYLES = {
    "green": Style.parse("bold bright_white on green"),
    "red": Style.parse("bold bright_white on red"),
    "yellow": Style.parse("bold black on yellow"),
    "cyan": Style.parse("bold bright_white on cyan"),
}

HELP_ITEMS = [
    ("↑/↓", "Navigate ports"),
    ("/", "Search port (digits, Enter to apply, Esc to cancel)"),
    ("k", "Kill process (no confirmation)"),
    ("K", "Force kill process (asks first)"),
    ("v", "View full command"),
    ("l", "View process details"),
    ("s", "View statistics"),
    ("d", "Toggle details view"),
    ("1/2/3/4", "Sort by port/process/pid/user"),
    ("g", "Toggle group collapse"),
    ("?", "Toggle help"),
    ("q", "Quit"),
]

MODAL_TITLES = {
    Modal.HELP: " Help - Keyboard Shortcuts ",
    Modal.LOGS: " Process Details ",
    Modal.COMMAND: " Full Command ",
    Modal.STATS: " Statistics ",
    Modal.CONFIRM: " Confirm ",
}


def truncate(text: str, width: int, suffix: str = "...") -> str:
    """Cut ``text`` to ``width`` columns, marking the cut with ``suffix``."""
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width <= len(suffix):
        return text[:width]
    return text[: width - len(suffix)] + suffix


class Screen:
    """
    Buffer of terminal output flushed with a single write per frame.

    Styles are rendered to ANSI escapes by rich; with ``color_system`` None
    the text is emitted unstyled.
    """

    def __init__(self, out: TextIO, color_system: ColorSystem | None = ColorSystem.STANDARD) -> None:
        self._out = out
        self._color_system = color_system
        self._parts: list[str] = []

    def move_to(self, x: int, y: int) -> None:
        """Move the cursor to column x, line y (1-based)."""
        self._parts.append(f"\x1b[{y + 1};{x + 1}H")

    def text(self, value: str) -> None:
        """Queue plain text."""
        self._parts.append(value)

    def styled(self, value: str, style: Style) -> None:
        """Queue text rendered with style."""
        self._parts.append(style.render(value, color_system=self._color_system))

    def clear(self) -> None:
        """Queue a full screen clear."""
        self._parts.append("\x1b[2J\x1b[H")

    def clear_line(self) -> None:
        """Queue a clear of the current line."""
        self._parts.append("\x1b[2K")

    def clear_to_eol(self) -> None:
        """Queue a clear to the end of the line."""
        self._parts.append("\x1b[K")

    def hide_cursor(self) -> None:
        """Queue a cursor hide."""
        self._parts.append("\x1b[?25l")

    def show_cursor(self) -> None:
        """Queue a cursor show."""
        self._parts.append("\x1b[?25h")

    def flush(self) -> None:
        """Write the queued output in a single call."""
        if self._parts:
            self._out.write("".join(self._parts))
            self._out.flush()
            self._parts.clear()


@dataclass(slots=True, frozen=True)
class Frame:
    """What a render call painted."""

    kind: str  # 'full', 'delta' or 'modal'
    lines: frozenset[int] = frozenset()


@dataclass(slots=True, frozen=True)
class _Painted:
    """Memory of the previous browsing frame, compared by the delta check."""

    signatures: tuple
    selected_index: int
    offset: int
    filter: str
    sort_key: SortKey
    show_details: bool
    searching: bool
    search_buffer: str
    toast_visible: bool


def _signature(row: Row, killing_port: int | None) -> tuple:
    if row.port is None:
        return ("group", row.group.id, row.hidden)
    p = row.port
    return (p.pid, p.port, p.process_name, p.command, p.lifetime, p.type, p.port == killing_port)


class Renderer:
    """Paint DashboardState into the terminal."""

    def __init__(
        self,
        out: TextIO | None = None,
        size: tuple[int, int] | None = None,
        color: bool = True,
    ) -> None:
        """
        Initialize the Renderer.

        Args:
            out: Stream to write frames to. Default stdout.
            size: Fixed (width, height). Queried from the terminal if None.
            color: Emit ANSI styling.
        """
        self._out = out or sys.stdout
        self._fixed_size = size
        self._width, self._height = size or (80, 24)
        self._screen = Screen(self._out, ColorSystem.STANDARD if color else None)
        self._previous: _Painted | None = None
        self._offset = 0
        self.update_size()

    @property
    def size(self) -> tuple[int, int]:
        """Get the terminal size as (width, height)."""
        return self._width, self._height

    def update_size(self) -> None:
        """Re-read the terminal dimensions."""
        if self._fixed_size is None:
            columns, lines = shutil.get_terminal_size((80, 24))
            self._width, self._height = columns, lines

    def reset(self) -> None:
        """Forget the previous frame so the next render is a full repaint."""
        self._previous = None

    def row_budget(self, state: DashboardState) -> int:
        """Number of port rows that fit on screen."""
        return max(1, self._footer_top(state) - FIRST_ROW_LINE)

    def _footer_top(self, state: DashboardState) -> int:
        return self._height - (7 if state.show_details else 4)

    def render(self, state: DashboardState) -> Frame:
        """Paint one frame, choosing between full and delta repaint."""
        if state.modal is not Modal.NONE:
            self._previous = None
            self._screen.clear()
            self._screen.hide_cursor()
            self._paint_modal(state)
            self._screen.flush()
            return Frame("modal")

        rows = state.rows()
        budget = self.row_budget(state)
        self._scroll(state.selected_index, len(rows), budget)
        current = _Painted(
            signatures=tuple(_signature(row, state.killing_port) for row in rows),
            selected_index=state.selected_index,
            offset=self._offset,
            filter=state.filter,
            sort_key=state.sort_key,
            show_details=state.show_details,
            searching=state.searching,
            search_buffer=state.search_buffer,
            toast_visible=state.toast is not None,
        )

        changed = self._changed_lines(self._previous, current, budget)
        self._previous = current

        if changed is None or state.toast is not None or len(changed) > budget / 2:
            self._paint_full(state, rows, budget)
            return Frame("full")

        self._paint_delta(state, rows, changed)
        return Frame("delta", frozenset(changed | {0}))

    def restore(self) -> None:
        """Clear the screen and show the cursor again."""
        self._previous = None
        self._screen.clear()
        self._screen.show_cursor()
        self._screen.flush()

    def _scroll(self, selected: int, count: int, budget: int) -> None:
        if selected < self._offset:
            self._offset = selected
        elif selected >= self._offset + budget:
            self._offset = selected - budget + 1
        self._offset = max(0, min(self._offset, max(0, count - budget)))

    def _changed_lines(self, previous: _Painted | None, current: _Painted, budget: int) -> set[int] | None:
        """Screen lines needing a repaint, or None when only a full repaint will do."""
        if (
            previous is None
            or len(previous.signatures) != len(current.signatures)
            or previous.filter != current.filter
            or previous.sort_key != current.sort_key
            or previous.show_details != current.show_details
            or previous.searching != current.searching
            or previous.search_buffer != current.search_buffer
            or previous.offset != current.offset
            or previous.toast_visible != current.toast_visible
        ):
            return None

        changed: set[int] = set()
        if previous.selected_index != current.selected_index:
            changed.add(self._line_for(previous.selected_index))
            changed.add(self._line_for(current.selected_index))

        for index in range(current.offset, min(len(current.signatures), current.offset + budget)):
            if previous.signatures[index] != current.signatures[index]:
                changed.add(self._line_for(index))

        return {line for line in changed if FIRST_ROW_LINE <= line < FIRST_ROW_LINE + budget}

    def _line_for(self, index: int) -> int:
        return FIRST_ROW_LINE + index - self._offset

    # ------------------------------------------------------------------
    # Browsing view
    # ------------------------------------------------------------------

    def _paint_full(self, state: DashboardState, rows: list[Row], budget: int) -> None:
        screen = self._screen
        screen.clear()
        screen.hide_cursor()
        self._paint_header(state, rows)
        self._paint_column_titles(state)

        for index in range(self._offset, min(len(rows), self._offset + budget)):
            self._paint_row(state, rows[index], index, self._line_for(index))
        if not rows:
            screen.move_to(2, FIRST_ROW_LINE)
            screen.styled("No listening ports found" if not state.filter else "No ports match the filter", STYLES["muted"])

        if state.show_details:
            self._paint_details(state)
        self._paint_footer(state)
        if state.toast is not None:
            self._paint_toast(state)
        screen.flush()

    def _paint_delta(self, state: DashboardState, rows: list[Row], changed: set[int]) -> None:
        screen = self._screen
        screen.hide_cursor()
        self._paint_header(state, rows)
        for line in sorted(changed):
            index = line - FIRST_ROW_LINE + self._offset
            if index < len(rows):
                self._paint_row(state, rows[index], index, line)
        if state.show_details:
            self._paint_details(state)
        screen.flush()

    def _paint_header(self, state: DashboardState, rows: list[Row]) -> None:
        screen = self._screen
        screen.move_to(0, 0)
        screen.styled(" porttop ", STYLES["title"])
        screen.text(" ")
        if state.killing and state.killing_port is not None:
            screen.styled(f"Killing port {state.killing_port}...", STYLES["warning"])
            screen.text(" | ")
        elif state.filter:
            screen.styled(f"Filter: {state.filter}", STYLES["warning"])
            screen.text(" | ")
        port_count = sum(1 if row.port else row.hidden for row in rows)
        screen.styled(f"Ports: {port_count}", STYLES["count"])
        screen.text(" | ")
        screen.styled(f"Sort: {state.sort_key.value}", STYLES["muted"])
        if state.error:
            screen.text(" | ")
            screen.styled(truncate(state.error, max(0, self._width - 45)), STYLES["error"])
        screen.clear_to_eol()

    def _paint_column_titles(self, state: DashboardState) -> None:
        screen = self._screen
        titles = {
            "port": "PORT",
            "process": "PROCESS",
            "type": "TYPE",
            "pid": "PID",
            "protocol": "PROTO",
            "user": "USER",
            "lifetime": "UPTIME",
        }
        for name, (x, width) in COLUMNS.items():
            if x >= self._width:
                break
            screen.move_to(x, 1)
            label = titles[name].rjust(width) if name == "port" else titles[name]
            screen.styled(label, STYLES["muted"])
        if state.show_details and self._width - COMMAND_COLUMN - 1 > 10:
            screen.move_to(COMMAND_COLUMN, 1)
            screen.styled("COMMAND", STYLES["muted"])
        screen.clear_to_eol()

    def format_row(self, state: DashboardState, row: Row) -> list[tuple[int, str, Style]]:
        """Column segments of a port row as (x, text, style)."""
        if row.port is None:
            label = f"▸ {row.group.type} ({row.hidden} hidden)"
            return [(COLUMNS["port"][0], label, STYLES["group"])]

        port = row.port
        port_type = port.type or row.group.type or "other"
        pid_style = STYLES["killing"] if state.killing and state.killing_port == port.port else STYLES["muted"]
        segments = [
            (COLUMNS["port"][0], str(port.port).rjust(COLUMNS["port"][1]), STYLES["port"]),
            (COLUMNS["process"][0], truncate(port.process_name, 19).ljust(19), STYLES["process"]),
            (COLUMNS["type"][0], truncate(port_type, 12).ljust(12), CATEGORY_STYLES.get(port_type, Style.parse("white"))),
            (COLUMNS["pid"][0], f"PID:{port.pid}".ljust(10), pid_style),
            (COLUMNS["protocol"][0], port.protocol.ljust(6), STYLES["muted"]),
            (COLUMNS["user"][0], truncate(port.user, 10).ljust(10), STYLES["muted"]),
            (COLUMNS["lifetime"][0], format_lifetime(port.lifetime).ljust(10), STYLES["muted"]),
        ]
        if state.show_details:
            width = self._width - COMMAND_COLUMN - 1
            if width > 10:
                segments.append((COMMAND_COLUMN, truncate(port.command, width), STYLES["command"]))
        return segments

    def _paint_row(self, state: DashboardState, row: Row, index: int, y: int) -> None:
        screen = self._screen
        screen.move_to(0, y)
        screen.clear_line()
        if index == state.selected_index:
            screen.styled("▶", STYLES["selector"])
        else:
            screen.text(" ")
        for x, value, style in self.format_row(state, row):
            if x >= self._width:
                break
            screen.move_to(x, y)
            screen.styled(value[: self._width - x], style)
        screen.clear_to_eol()

    def _paint_details(self, state: DashboardState) -> None:
        screen = self._screen
        top = self._height - 6
        screen.move_to(0, top)
        screen.styled("─" * self._width, STYLES["rule"])

        screen.move_to(0, top + 1)
        screen.clear_line()
        screen.move_to(0, top + 2)
        screen.clear_line()

        port = state.selected_port()
        if port is None:
            return
        fields = [
            f"Port: {port.port}",
            f"PID: {port.pid}",
            f"User: {port.user or '-'}",
            f"Protocol: {port.protocol}",
        ]
        if port.lifetime is not None:
            fields.append(f"Uptime: {format_lifetime(port.lifetime)}")
        screen.move_to(0, top + 1)
        screen.styled(truncate(" | ".join(fields), self._width), STYLES["detail"])
        screen.move_to(0, top + 2)
        screen.styled(truncate(f"CWD: {port.cwd or 'unknown'}", self._width), STYLES["muted"])

    def _paint_footer(self, state: DashboardState) -> None:
        screen = self._screen
        screen.move_to(0, self._height - 2)
        screen.styled("─" * self._width, STYLES["rule"])
        screen.move_to(0, self._height - 1)
        if state.searching:
            screen.styled("Search port: ", STYLES["warning"])
            screen.text(state.search_buffer or "_")
            screen.text(" ")
            screen.styled("(Enter to apply, ESC to cancel)", STYLES["muted"])
        else:
            screen.styled(" | ".join(["/: search", "k: kill", "s: stats", "?: help", "q: quit"]), STYLES["muted"])
        screen.clear_to_eol()

    def _paint_toast(self, state: DashboardState) -> None:
        toast = state.toast
        screen = self._screen
        y = self._height - 3
        message = f" {truncate(toast.message, max(0, self._width - 8))} "
        x = max(0, (self._width - len(message)) // 2)
        screen.move_to(0, y)
        screen.clear_line()
        screen.move_to(x, y)
        screen.styled(message, TOAST_STYLES.get(toast.color, TOAST_STYLES["green"]))
        screen.clear_to_eol()

    # ------------------------------------------------------------------
    # Modals
    # ------------------------------------------------------------------

    def _paint_modal(self, state: DashboardState) -> None:
        if state.modal is Modal.CONFIRM:
            self._paint_confirm(state)
            return

        if state.modal is Modal.HELP:
            lines = [f"{key:>8}  {desc}" for key, desc in HELP_ITEMS]
            hint = "Press ? or ESC to close"
        elif state.modal is Modal.COMMAND:
            lines = textwrap.wrap(state.modal_content or "", self._width, break_on_hyphens=False) or [""]
            hint = "Press ESC to close"
        elif state.modal is Modal.STATS:
            lines = (state.modal_content or "").splitlines()
            hint = "Press ESC or s to close"
        else:
            lines = (state.modal_content or "No details available").splitlines()
            hint = "Press ESC to close"

        screen = self._screen
        screen.move_to(0, 0)
        screen.styled(MODAL_TITLES[state.modal], STYLES["title"])
        screen.clear_to_eol()
        for y, line in enumerate(lines[: max(0, self._height - 4)], start=2):
            screen.move_to(0, y)
            screen.text(truncate(line, self._width))
            screen.clear_to_eol()
        screen.move_to(0, self._height - 1)
        screen.styled(hint, STYLES["muted"])
        screen.clear_to_eol()

    def _paint_confirm(self, state: DashboardState) -> None:
        screen = self._screen
        message = truncate(state.modal_content or "", max(0, self._width - 8))
        box_width = min(len(message) + 4, self._width - 4)
        x = max(0, self._width // 2 - box_width // 2)
        y = self._height // 2
        bold = Style.parse("bold white")

        screen.move_to(x, y - 1)
        screen.styled("┌" + "─" * (box_width - 2) + "┐", bold)
        screen.move_to(x, y)
        screen.styled("│", bold)
        screen.text(" " + message.ljust(box_width - 3))
        screen.styled("│", bold)
        screen.move_to(x, y + 1)
        screen.styled("└" + "─" * (box_width - 2) + "┘", bold)
        screen.move_to(x + 2, y + 2)
        screen.styled("Press ENTER to confirm, ESC to cancel", STYLES["muted"])
