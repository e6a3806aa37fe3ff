"""Shared fixtures for porttop tests."""

import pytest

from porttop.models import PortInfo
from porttop.runner import CommandResult

OK = CommandResult("", "", 0)


class FakeRunner:
    """
    Scripted stand-in for CommandRunner.

    Routes are matched on the longest argv prefix. An outcome may be a
    CommandResult, an exception to raise, or a list of those consumed in order
    (the last one repeats).
    """

    def __init__(self, default: CommandResult = OK) -> None:
        self.default = default
        self.routes: dict[tuple[str, ...], object] = {}
        self.calls: list[list[str]] = []

    def on(self, *prefix: str, stdout: str = "", stderr: str = "", exit_code: int = 0, outcome=None) -> None:
        self.routes[prefix] = outcome if outcome is not None else CommandResult(stdout, stderr, exit_code)

    def calls_to(self, *prefix: str) -> list[list[str]]:
        return [argv for argv in self.calls if tuple(argv[: len(prefix)]) == prefix]

    async def run(self, argv) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        matches = [prefix for prefix in self.routes if tuple(argv[: len(prefix)]) == prefix]
        if not matches:
            return self.default

        prefix = max(matches, key=len)
        outcome = self.routes[prefix]
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_port(port: int = 3000, pid: int = 100, name: str = "node", **kwargs) -> PortInfo:
    kwargs.setdefault("protocol", "TCP")
    return PortInfo(port=port, pid=pid, process_name=name, **kwargs)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
