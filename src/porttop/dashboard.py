"""Interactive dashboard: refresh loop, key bindings and the kill lifecycle."""

import asyncio
import inspect
import signal
import time
from collections.abc import Awaitable, Callable

import structlog

from porttop.actions import full_command, process_details
from porttop.adapter import PlatformAdapter
from porttop.detector import PortDetector
from porttop.errors import DiscoveryError
from porttop.filters import FilterOptions, SortKey, apply_filters
from porttop.keyboard import WILDCARD, KeyboardHandler
from porttop.models import PortInfo
from porttop.processor import PortProcessor
from porttop.renderer import Frame, Renderer
from porttop.state import (
    Action,
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
from porttop.stats import KillTracker

log = structlog.get_logger()

DEFAULT_REFRESH_INTERVAL = 2.0
MIN_REFRESH_INTERVAL = 0.1
POST_KILL_DELAY = 0.2

TOAST_SECONDS = 3.0
PROMOTION_TOAST_SECONDS = 5.0

SORT_KEYS = {"1": SortKey.PORT, "2": SortKey.PROCESS, "3": SortKey.PID, "4": SortKey.USER}


class Dashboard:
    """
    Owns the dashboard state and drives discovery, input and painting.

    All state changes go through ``reduce``; this class only decides which
    actions to dispatch and when to repaint.
    """

    def __init__(
        self,
        detector: PortDetector,
        processor: PortProcessor,
        renderer: Renderer,
        keyboard: KeyboardHandler,
        adapter: PlatformAdapter | None = None,
        filter_options: FilterOptions | None = None,
        kill_tracker: KillTracker | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        post_kill_delay: float = POST_KILL_DELAY,
        show_details: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the Dashboard.

        Args:
            detector: Discovery entry point.
            processor: Categorizes and groups each snapshot.
            renderer: Paints the state.
            keyboard: Source of key events.
            adapter: Used for kills and command lookups. Default the
                detector's adapter.
            filter_options: Command-line filters applied to every refresh.
            kill_tracker: Counts kills for the Stats view.
            refresh_interval: Seconds between refreshes. Default 2.0s.
            post_kill_delay: Pause before the refresh following a kill.
            show_details: Initial visibility of the details footer.
            clock: Monotonic time source for toast expiry.
        """
        self._detector = detector
        self._processor = processor
        self._renderer = renderer
        self._keyboard = keyboard
        self._adapter = adapter or detector.adapter
        self._filter_options = filter_options or FilterOptions()
        self._tracker = kill_tracker or KillTracker()
        self._refresh_interval = max(MIN_REFRESH_INTERVAL, refresh_interval)
        self._post_kill_delay = post_kill_delay
        self._clock = clock
        self._stop_event = asyncio.Event()

        self.state = DashboardState(
            show_details=show_details,
            sort_key=self._filter_options.sort or SortKey.PORT,
        )

    @property
    def refresh_interval(self) -> float:
        """Get the refresh interval in seconds."""
        return self._refresh_interval

    @property
    def kill_tracker(self) -> KillTracker:
        """Get the session kill tracker."""
        return self._tracker

    def dispatch(self, action: Action) -> None:
        """Apply action to the state without repainting."""
        reduce(self.state, action)

    def render(self) -> Frame | None:
        """Expire the toast if due, then paint a frame."""
        self.dispatch(ExpireToast(self._clock()))
        try:
            return self._renderer.render(self.state)
        except Exception:
            log.exception("render_failed")
            return None

    def _act(self, action: Action) -> None:
        self.dispatch(action)
        self.render()

    def _toast(self, message: str, color: str, seconds: float = TOAST_SECONDS) -> None:
        self.dispatch(ShowToast(Toast(message, color, self._clock() + seconds)))

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """
        Run one discovery cycle and load the result into the state.

        A failed cycle keeps the previous snapshot on screen and shows the
        error in the header. Errors never propagate to the caller.
        """
        try:
            ports = await self._detector.detect_ports()
            result = self._processor.process_ports(ports)
            groups = result.groups
            if self._filter_options.active:
                groups = apply_filters(groups, self._filter_options, self._processor)
        except DiscoveryError as exc:
            log.warning("discovery_failed", error=str(exc))
            self.dispatch(SnapshotFailed(str(exc)))
            return
        except Exception as exc:
            log.exception("refresh_failed")
            self.dispatch(SnapshotFailed(str(exc) or type(exc).__name__))
            return

        self.dispatch(SnapshotLoaded(result.ports, groups, result.timestamp))

    # ------------------------------------------------------------------
    # Kill lifecycle
    # ------------------------------------------------------------------

    async def kill(self, port: PortInfo, force: bool = False) -> bool:
        """Kill the process behind ``port`` and refresh; one kill at a time."""
        if self.state.killing:
            return False

        self._act(KillStarted(port.port))
        try:
            try:
                killed = await self._adapter.kill_process(port.pid, force)
            except Exception:
                log.exception("kill_failed", port=port.port, pid=port.pid)
                killed = False

            if killed:
                promotion = self._tracker.record_kill(port, force)
                if promotion is not None:
                    self._toast(
                        f"Killed port {port.port}! New rank: {promotion.title}",
                        "cyan",
                        PROMOTION_TOAST_SECONDS,
                    )
                else:
                    self._toast(f"Killed {port.process_name} (PID {port.pid}) on port {port.port}", "green")
            else:
                self._toast(f"Failed to kill PID {port.pid} on port {port.port}", "red")

            self._detector.clear_cache()
            self._adapter.invalidate(port.pid)
            await asyncio.sleep(self._post_kill_delay)
            await self.refresh()
            self.render()
            return killed
        finally:
            self._act(KillFinished())

    async def kill_selected(self, force: bool = False) -> None:
        """Kill the selected port's process."""
        port = self.state.selected_port()
        if port is None or self.state.blocking:
            return
        await self.kill(port, force)

    def request_force_kill(self) -> None:
        """Ask for confirmation before force killing the selected port."""
        port = self.state.selected_port()
        if port is None or self.state.killing:
            return
        self._act(
            RequestConfirm(
                port,
                f"Force kill {port.process_name} (PID {port.pid}) on port {port.port}?",
            )
        )

    async def confirm(self) -> None:
        """Handle enter: run a confirmed kill or commit the search."""
        if self.state.modal is Modal.CONFIRM:
            target = self.state.confirm_target
            self._act(CloseModal())
            if target is not None:
                await self.kill(target, force=True)
        elif self.state.searching:
            self._act(CommitSearch())

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def view_command(self) -> None:
        """Open the full command of the selected port."""
        port = self.state.selected_port()
        if port is None or self.state.blocking:
            return
        command = await self._adapter.get_process_command(port.pid)
        if command == "unknown":
            command = full_command(port)
        self._act(OpenModal(Modal.COMMAND, command))

    async def view_logs(self) -> None:
        """Open the process details of the selected port."""
        port = self.state.selected_port()
        if port is None or self.state.blocking:
            return
        details = await asyncio.to_thread(process_details, port)
        self._act(OpenModal(Modal.LOGS, details))

    def toggle_stats(self) -> None:
        """Open or close the kill statistics view."""
        self._act(ToggleStats(self._tracker.summary()))

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _on_any_key(self, key: str) -> None:
        if not self.state.searching:
            return
        if key == "backspace":
            self._act(SearchBackspace())
        elif len(key) == 1 and key.isdigit():
            self._act(SearchInput(key))

    def _on_quit(self, key: str) -> None:
        if not self.state.searching:
            self.stop()

    def _guard(self, handler: Callable[[str], object]) -> Callable[[str], Awaitable[None]]:
        """
        Wrap a key handler so a failing action is logged and followed by a refresh.

        Args:
            handler: Sync or async handler taking the key name.

        Returns:
            An async handler that never raises ``Exception``.
        """

        async def guarded(key: str) -> None:
            try:
                result = handler(key)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception("action_failed", key=key)
                await self.refresh()
                self.render()

        return guarded

    def bind_keys(self) -> None:
        """Register every key binding with the keyboard handler."""
        bindings: dict[str, Callable[[str], object]] = {
            "q": self._on_quit,
            "up": lambda _: self._act(MoveSelection(-1)),
            "down": lambda _: self._act(MoveSelection(1)),
            "/": lambda _: self._act(StartSearch()),
            "k": lambda _: self.kill_selected(),
            "K": lambda _: self.request_force_kill(),
            "g": lambda _: self._act(ToggleGroup()),
            "d": lambda _: self._act(ToggleDetails()),
            "?": lambda _: self._act(ToggleHelp()),
            "s": lambda _: self.toggle_stats(),
            "v": lambda _: self.view_command(),
            "l": lambda _: self.view_logs(),
            "escape": lambda _: self._act(Escape()),
            "enter": lambda _: self.confirm(),
            WILDCARD: self._on_any_key,
        }
        for key, sort_key in SORT_KEYS.items():
            bindings[key] = lambda _, sort_key=sort_key: self._act(SetSort(sort_key))

        for key, handler in bindings.items():
            self._keyboard.on(key, self._guard(handler))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def resize(self) -> None:
        """Re-read the terminal size and repaint everything."""
        self._renderer.update_size()
        self._renderer.reset()
        self.render()

    async def run(self) -> None:
        """Run until ``stop`` is called or ctrl+c is pressed."""
        loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self.bind_keys()
        self._keyboard.start()

        sigwinch = getattr(signal, "SIGWINCH", None)
        if sigwinch is not None:
            loop.add_signal_handler(sigwinch, self.resize)

        try:
            while not self._stop_event.is_set():
                await self.refresh()
                self.render()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._refresh_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            if sigwinch is not None:
                loop.remove_signal_handler(sigwinch)
            self._keyboard.stop()
            self._renderer.restore()

    def stop(self) -> None:
        """Ask the refresh loop to exit."""
        self._stop_event.set()
