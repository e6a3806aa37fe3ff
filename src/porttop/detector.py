"""Discovery orchestration with snapshot memoization and call coalescing."""

import asyncio
import time
from collections.abc import Callable

import structlog

from porttop.adapter import PlatformAdapter
from porttop.models import PortInfo

log = structlog.get_logger()

DEFAULT_SNAPSHOT_TTL = 1.0


class PortDetector:
    """
    Single entry point for port discovery.

    Back-to-back calls within ``snapshot_ttl`` reuse the last snapshot, and a
    call made while a discovery is already running awaits that discovery
    instead of starting a second one. ``clear_cache`` drops both, so the next
    call always runs the whole adapter pipeline.
    """

    def __init__(
        self,
        adapter: PlatformAdapter,
        snapshot_ttl: float = DEFAULT_SNAPSHOT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._adapter = adapter
        self._snapshot_ttl = snapshot_ttl
        self._clock = clock
        self._snapshot: list[PortInfo] | None = None
        self._snapshot_at = 0.0
        self._inflight: asyncio.Task[list[PortInfo]] | None = None
        self._generation = 0

    @property
    def adapter(self) -> PlatformAdapter:
        """Get the wrapped platform adapter."""
        return self._adapter

    @property
    def is_detecting(self) -> bool:
        """Check if a discovery is in flight."""
        return self._inflight is not None and not self._inflight.done()

    async def detect_ports(self) -> list[PortInfo]:
        """
        Return the current snapshot of listening ports.

        Raises:
            DiscoveryError: The adapter could not list sockets.
        """
        if self._snapshot is not None and self._clock() - self._snapshot_at < self._snapshot_ttl:
            return list(self._snapshot)

        if self.is_detecting:
            log.debug("discovery_coalesced")
            return list(await asyncio.shield(self._inflight))

        generation = self._generation
        task = asyncio.ensure_future(self._adapter.detect_ports())
        self._inflight = task
        try:
            ports = await asyncio.shield(task)
        finally:
            if self._inflight is task:
                self._inflight = None

        # A clear_cache during the call means this result may predate a kill
        if generation == self._generation:
            self._snapshot = ports
            self._snapshot_at = self._clock()
        return list(ports)

    def clear_cache(self) -> None:
        """Invalidate the snapshot memo and detach any in-flight discovery."""
        self._snapshot = None
        self._inflight = None
        self._generation += 1
