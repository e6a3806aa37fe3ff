"""Tests for the PortDetector."""

import asyncio

import pytest

from conftest import make_port
from porttop.detector import PortDetector
from porttop.errors import ToolExecutionError


class StubAdapter:
    """Adapter double counting discovery calls."""

    def __init__(self, results=None, gate: asyncio.Event | None = None) -> None:
        self.results = list(results or [[make_port()]])
        self.gate = gate
        self.calls = 0

    async def detect_ports(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


class TestPortDetector:
    """Tests for memoization and coalescing."""

    @pytest.mark.asyncio
    async def test_delegates(self, clock):
        """Test the adapter result is returned."""
        adapter = StubAdapter([[make_port(3000)]])
        detector = PortDetector(adapter, clock=clock)

        ports = await detector.detect_ports()

        assert [p.port for p in ports] == [3000]
        assert detector.adapter is adapter

    @pytest.mark.asyncio
    async def test_snapshot_reused_within_ttl(self, clock):
        """Test back-to-back calls reuse the last snapshot."""
        adapter = StubAdapter()
        detector = PortDetector(adapter, snapshot_ttl=1.0, clock=clock)

        await detector.detect_ports()
        clock.advance(0.5)
        await detector.detect_ports()
        assert adapter.calls == 1

        clock.advance(0.6)
        await detector.detect_ports()
        assert adapter.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_calls_coalesce(self, clock):
        """Test calls made during a discovery share it."""
        gate = asyncio.Event()
        adapter = StubAdapter(gate=gate)
        detector = PortDetector(adapter, clock=clock)

        first = asyncio.ensure_future(detector.detect_ports())
        await asyncio.sleep(0)
        assert detector.is_detecting
        second = asyncio.ensure_future(detector.detect_ports())
        await asyncio.sleep(0)

        gate.set()
        a, b = await asyncio.gather(first, second)

        assert adapter.calls == 1
        assert a == b
        assert not detector.is_detecting

    @pytest.mark.asyncio
    async def test_clear_cache_forces_rerun(self, clock):
        """Test clear_cache makes the next call run the pipeline again."""
        adapter = StubAdapter([[make_port(3000)], []])
        detector = PortDetector(adapter, clock=clock)

        await detector.detect_ports()
        detector.clear_cache()
        ports = await detector.detect_ports()

        assert adapter.calls == 2
        assert ports == []

    @pytest.mark.asyncio
    async def test_result_from_before_clear_not_memoized(self, clock):
        """Test a discovery straddling clear_cache is not kept as the snapshot."""
        gate = asyncio.Event()
        adapter = StubAdapter([[make_port(3000)], []], gate=gate)
        detector = PortDetector(adapter, clock=clock)

        pending = asyncio.ensure_future(detector.detect_ports())
        await asyncio.sleep(0)
        detector.clear_cache()
        gate.set()
        await pending

        await detector.detect_ports()
        assert adapter.calls == 2

    @pytest.mark.asyncio
    async def test_errors_propagate_and_are_not_cached(self, clock):
        """Test a failed discovery raises and the next call retries."""
        adapter = StubAdapter([ToolExecutionError("lsof", 2, "bad"), [make_port()]])
        detector = PortDetector(adapter, clock=clock)

        with pytest.raises(ToolExecutionError):
            await detector.detect_ports()
        assert len(await detector.detect_ports()) == 1
