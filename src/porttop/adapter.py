"""Platform adapter contract shared by the Unix and Windows implementations."""

import asyncio
import sys
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import replace

import structlog

from porttop.cache import MetadataCache
from porttop.errors import InsufficientPrivilegeError, ToolExecutionError
from porttop.models import UNKNOWN_METADATA, PortInfo, ProcessMetadata
from porttop.runner import CommandResult, CommandRunner

log = structlog.get_logger()

KILL_WAIT_SECONDS = 1.0

PERMISSION_MARKERS = ("permission denied", "access is denied", "operation not permitted")


class PlatformAdapter(ABC):
    """
    Discover listening sockets and manage their processes on one OS family.

    Subclasses provide the tool invocations and parsers; this base class owns
    the shared pipeline: run the listing tool, parse it, batch-resolve
    metadata for the distinct pids through the cache, and merge the results.
    It also owns the graceful-then-forceful kill sequence.
    """

    #: Name of the listing tool, used in error messages.
    listing_tool: str = ""

    def __init__(
        self,
        runner: CommandRunner,
        cache: MetadataCache[int, ProcessMetadata] | None = None,
        kill_wait: float = KILL_WAIT_SECONDS,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            runner: Executes external commands under the shared limiter.
            cache: Per-pid metadata cache. A fresh 30s/1000-entry cache if None.
            kill_wait: Seconds to wait between a graceful kill and the
                liveness check.
        """
        self._runner = runner
        self._cache: MetadataCache[int, ProcessMetadata] = cache if cache is not None else MetadataCache()
        self._kill_wait = kill_wait

    @property
    def cache(self) -> MetadataCache[int, ProcessMetadata]:
        """Get the per-pid metadata cache."""
        return self._cache

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def detect_ports(self) -> list[PortInfo]:
        """
        Run one discovery cycle.

        Raises:
            InsufficientPrivilegeError: The listing tool reported a permission problem.
            ToolExecutionError: The listing tool is missing or failed.
        """
        result = await self._run_listing()
        ports = self.parse_listing(result.stdout)

        pids = list(dict.fromkeys(port.pid for port in ports))
        metadata = await self.resolve_metadata(pids)

        return [self._merge(port, metadata.get(port.pid)) for port in ports]

    async def _run_listing(self) -> CommandResult:
        argv = self.listing_command()
        try:
            result = await self._runner.run(argv)
        except OSError as exc:
            raise ToolExecutionError(self.listing_tool, None, str(exc)) from exc

        if result.exit_code != 0 and not self.is_empty_listing(result):
            stderr = result.stderr.lower()
            if any(marker in stderr for marker in PERMISSION_MARKERS):
                raise InsufficientPrivilegeError(self.listing_tool, result.stderr)
            raise ToolExecutionError(self.listing_tool, result.exit_code, result.stderr)
        return result

    def is_empty_listing(self, result: CommandResult) -> bool:
        """Whether a non-zero exit only means there was nothing to list."""
        return False

    @staticmethod
    def _merge(port: PortInfo, metadata: ProcessMetadata | None) -> PortInfo:
        if metadata is None:
            return port
        return replace(
            port,
            command=metadata.command,
            cwd=metadata.cwd,
            lifetime=metadata.lifetime,
        )

    async def resolve_metadata(self, pids: Sequence[int]) -> dict[int, ProcessMetadata]:
        """
        Resolve command, cwd and lifetime for ``pids``.

        Cached entries are served directly; the rest are fetched in one batch
        per metadata dimension and stored. A pid the batch could not resolve
        gets placeholder values rather than failing the cycle.
        """
        self._cache.cleanup()

        resolved: dict[int, ProcessMetadata] = {}
        missing: list[int] = []
        for pid in pids:
            cached = self._cache.get(pid)
            if cached is not None:
                resolved[pid] = cached
            else:
                missing.append(pid)

        if not missing:
            return resolved

        fetched = await self.fetch_metadata(missing)
        for pid in missing:
            metadata = fetched.get(pid, UNKNOWN_METADATA)
            resolved[pid] = metadata
            self._cache.set(pid, metadata)
        return resolved

    def invalidate(self, pid: int) -> None:
        """Forget cached metadata for ``pid``."""
        self._cache.delete(pid)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def kill_process(self, pid: int, force: bool = False) -> bool:
        """
        Terminate ``pid``.

        With ``force`` a forceful kill is sent immediately. Otherwise a
        graceful request is sent, and if the process is still alive after
        ``kill_wait`` seconds exactly one forceful kill follows. The cached
        metadata for the pid is dropped whatever the outcome, since the OS may
        reuse the pid.
        """
        try:
            if force:
                return await self._kill(pid, force=True)

            if not await self._kill(pid, force=False):
                return False

            await asyncio.sleep(self._kill_wait)

            if not await self.is_alive(pid):
                return True

            log.info("kill_escalate", pid=pid)
            return await self._kill(pid, force=True)
        except Exception:
            log.exception("kill_error", pid=pid)
            return False
        finally:
            self.invalidate(pid)

    async def _kill(self, pid: int, force: bool) -> bool:
        result = await self._runner.run(self.kill_command(pid, force))
        if result.exit_code != 0:
            log.error(
                "kill_failed",
                pid=pid,
                force=force,
                exit_code=result.exit_code,
                stderr=result.stderr.strip(),
            )
            return False
        return True

    async def is_alive(self, pid: int) -> bool:
        """Check whether ``pid`` still exists."""
        result = await self._runner.run(self.liveness_command(pid))
        return self.parse_liveness(pid, result)

    # ------------------------------------------------------------------
    # Platform hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def listing_command(self) -> list[str]:
        """Argument vector of the socket listing tool."""

    @abstractmethod
    def parse_listing(self, output: str) -> list[PortInfo]:
        """Parse listing output into deduplicated, unenriched PortInfo."""

    @abstractmethod
    async def fetch_metadata(self, pids: Sequence[int]) -> dict[int, ProcessMetadata]:
        """Batch-fetch metadata for ``pids`` bypassing the cache."""

    @abstractmethod
    def kill_command(self, pid: int, force: bool) -> list[str]:
        """Argument vector of the graceful or forceful kill."""

    @abstractmethod
    def liveness_command(self, pid: int) -> list[str]:
        """Argument vector of the liveness check."""

    @abstractmethod
    def parse_liveness(self, pid: int, result: CommandResult) -> bool:
        """Interpret the liveness check result."""

    @abstractmethod
    async def get_process_command(self, pid: int) -> str:
        """Fetch the full, untruncated command line of ``pid``."""


def dedupe_ports(ports: Iterable[PortInfo]) -> list[PortInfo]:
    """Keep the first entry for each (port, pid) pair, preserving order."""
    seen: dict[tuple[int, int], PortInfo] = {}
    for port in ports:
        seen.setdefault((port.port, port.pid), port)
    return list(seen.values())


def select_adapter(
    runner: CommandRunner,
    platform: str = sys.platform,
    cache: MetadataCache[int, ProcessMetadata] | None = None,
    kill_wait: float = KILL_WAIT_SECONDS,
) -> PlatformAdapter:
    """Build the adapter for ``platform``; called once at startup."""
    if platform.startswith("win"):
        from porttop.windows import WindowsAdapter

        return WindowsAdapter(runner, cache=cache, kill_wait=kill_wait)

    from porttop.unix import UnixAdapter

    return UnixAdapter(runner, cache=cache, kill_wait=kill_wait)
