"""Bounded execution of external inspection tools."""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 10


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Captured output of a finished external command."""

    stdout: str
    stderr: str
    exit_code: int


class ConcurrencyLimiter:
    """
    Bound the number of concurrently running operations.

    Requests beyond the limit wait in FIFO order and are started as running
    slots free up. A released slot is handed directly to the oldest waiter, so
    a newcomer can never overtake the queue.
    """

    def __init__(self, limit: int = DEFAULT_MAX_CONCURRENCY) -> None:
        """
        Initialize the limiter.

        Args:
            limit: Maximum number of operations in flight. Default 10.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def limit(self) -> int:
        """Get the concurrency bound."""
        return self._limit

    @property
    def running(self) -> int:
        """Get the number of operations holding a slot."""
        return self._running

    @property
    def pending(self) -> int:
        """Get the number of queued requests still waiting for a slot."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Wait for a free slot."""
        if self._running < self._limit and not self.pending:
            self._running += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            # A slot handed over just before cancellation must be passed on
            if waiter.done() and not waiter.cancelled():
                self.release()
            raise

    def release(self) -> None:
        """Free a slot, handing it to the oldest live waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()

    async def run(self, func: Callable[..., Awaitable[T]], *args) -> T:
        """Run ``func(*args)`` once a slot is available."""
        async with self:
            return await func(*args)


class CommandRunner:
    """Spawn external commands through a shared ConcurrencyLimiter."""

    def __init__(self, limiter: ConcurrencyLimiter | None = None) -> None:
        self._limiter = limiter or ConcurrencyLimiter()

    @property
    def limiter(self) -> ConcurrencyLimiter:
        """Get the limiter shared by every command."""
        return self._limiter

    async def run(self, argv: Sequence[str]) -> CommandResult:
        """
        Run a command to completion and capture its output.

        Raises:
            FileNotFoundError: The executable does not exist.
            OSError: The process could not be spawned.
        """
        return await self._limiter.run(self._spawn, list(argv))

    async def _spawn(self, argv: list[str]) -> CommandResult:
        log.debug("command_spawn", argv=argv)
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        return CommandResult(
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            exit_code=proc.returncode or 0,
        )
