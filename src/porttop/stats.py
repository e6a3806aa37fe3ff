"""In-memory kill counter with rank promotions."""

from collections import Counter
from dataclasses import dataclass

from porttop.models import PortInfo


@dataclass(slots=True, frozen=True)
class Rank:
    """A title earned after ``threshold`` kills."""

    threshold: int
    title: str


RANKS: tuple[Rank, ...] = (
    Rank(0, "Port Novice"),
    Rank(5, "Socket Sweeper"),
    Rank(25, "Process Hunter"),
    Rank(100, "Daemon Slayer"),
    Rank(500, "Port Reaper"),
)


class KillTracker:
    """
    Count kills for the Stats view and toast promotions.

    Counts live for the duration of the session only.
    """

    def __init__(self, ranks: tuple[Rank, ...] = RANKS) -> None:
        self._ranks = tuple(sorted(ranks, key=lambda r: r.threshold))
        self._total = 0
        self._forced = 0
        self._by_type: Counter[str] = Counter()
        self._by_port: Counter[int] = Counter()

    @property
    def total_kills(self) -> int:
        """Get the number of successful kills."""
        return self._total

    @property
    def rank(self) -> Rank:
        """Get the current rank."""
        return rank_for(self._total, self._ranks)

    def record_kill(self, port: PortInfo, force: bool = False) -> Rank | None:
        """Count a successful kill; return the new rank if one was reached."""
        before = self.rank
        self._total += 1
        if force:
            self._forced += 1
        self._by_type[port.type or "other"] += 1
        self._by_port[port.port] += 1

        after = self.rank
        return after if after != before else None

    def summary(self) -> str:
        """Multi-line text for the Stats view."""
        lines = [
            f"Rank: {self.rank.title}",
            f"Total kills: {self._total}",
            f"Forced kills: {self._forced}",
        ]
        next_rank = next((r for r in self._ranks if r.threshold > self._total), None)
        if next_rank:
            lines.append(f"Next rank: {next_rank.title} in {next_rank.threshold - self._total}")
        if self._by_port:
            port, count = self._by_port.most_common(1)[0]
            lines.append(f"Most killed port: {port} ({count}x)")
        if self._by_type:
            lines.append("")
            lines.append("Kills by type:")
            lines.extend(f"  {name:<12} {count}" for name, count in self._by_type.most_common())
        return "\n".join(lines)


def rank_for(total: int, ranks: tuple[Rank, ...] = RANKS) -> Rank:
    current = ranks[0]
    for rank in ranks:
        if total >= rank.threshold:
            current = rank
    return current
