"""Categorization and grouping of discovered ports."""

import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from porttop.models import PortGroup, PortInfo

OTHER = "other"
UNEXPECTED = "unexpected"


@dataclass(slots=True, frozen=True)
class TypePreset:
    """One row of the category table."""

    name: str
    priority: int = 0
    ports: tuple[int, ...] = ()
    port_ranges: tuple[tuple[int, int], ...] = ()
    command_patterns: tuple[str, ...] = ()
    process_patterns: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping) -> "TypePreset":
        """Build a preset from a config mapping."""
        return cls(
            name=str(data["name"]),
            priority=int(data.get("priority", 0)),
            ports=tuple(int(p) for p in data.get("ports", ())),
            port_ranges=tuple((int(lo), int(hi)) for lo, hi in data.get("port_ranges", ())),
            command_patterns=tuple(str(p) for p in data.get("command_patterns", ())),
            process_patterns=tuple(str(p) for p in data.get("process_patterns", ())),
        )


DEFAULT_PRESETS: tuple[TypePreset, ...] = (
    TypePreset(
        name="database",
        priority=100,
        ports=(3306, 5432, 6379, 27017, 9200, 11211, 5984, 7474, 8529, 26257),
        process_patterns=("postgres", "mysqld", "mariadb", "redis", "mongod", "memcached"),
    ),
    TypePreset(
        name="storybook",
        priority=90,
        ports=(6006, 6007),
        command_patterns=("storybook",),
    ),
    TypePreset(
        name="testing",
        priority=80,
        ports=(9323, 51204),
        command_patterns=("vitest", "jest", "playwright", "cypress", "pytest", "karma"),
    ),
    TypePreset(
        name="dev-server",
        priority=70,
        ports=(3000, 3001, 4200, 5173, 5174, 8080, 8081, 4321, 1313),
        command_patterns=("vite", "webpack", "next dev", "nuxt", "react-scripts", "ng serve", "astro"),
    ),
    TypePreset(
        name="api",
        priority=60,
        ports=(4000, 5000, 8000, 8888, 9000),
        command_patterns=("uvicorn", "gunicorn", "flask", "django", "rails", "express", "fastapi"),
        process_patterns=("node", "python", "ruby", "java", "deno", "bun"),
    ),
    TypePreset(
        name="system",
        priority=10,
        port_ranges=((1, 1023),),
        process_patterns=("sshd", "launchd", "systemd", "cupsd", "rpcbind"),
    ),
    TypePreset(name=UNEXPECTED, priority=0),
    TypePreset(name=OTHER, priority=-1),
)


class TypeDetector:
    """Match a port against a priority-ordered preset table."""

    def __init__(self, presets: Iterable[TypePreset] = DEFAULT_PRESETS) -> None:
        self._presets = sorted(presets, key=lambda p: p.priority, reverse=True)

    @property
    def presets(self) -> list[TypePreset]:
        """Get the presets, highest priority first."""
        return list(self._presets)

    def detect_type(self, port: PortInfo) -> str:
        """Return the category of ``port``; port numbers win over patterns."""
        return (
            self.detect_by_port(port.port)
            or self.detect_by_command(port.command, port.process_name)
            or OTHER
        )

    def detect_by_port(self, number: int) -> str | None:
        for preset in self._presets:
            if preset.name == OTHER:
                continue
            if number in preset.ports:
                return preset.name
            if any(lo <= number <= hi for lo, hi in preset.port_ranges):
                return preset.name
        return None

    def detect_by_command(self, command: str, process_name: str) -> str | None:
        text = f"{command} {process_name}".lower()
        for preset in self._presets:
            if preset.name in (OTHER, UNEXPECTED):
                continue
            patterns = preset.command_patterns + preset.process_patterns
            if any(pattern.lower() in text for pattern in patterns):
                return preset.name
        return None


@dataclass(slots=True)
class ProcessResult:
    """Categorized snapshot."""

    ports: list[PortInfo]
    groups: list[PortGroup]
    timestamp: float = field(default_factory=time.time)


class PortProcessor:
    """Assign categories to ports and group them."""

    def __init__(self, detector: TypeDetector | None = None) -> None:
        self._detector = detector or TypeDetector()

    def categorize_port(self, port: PortInfo) -> str:
        """Return the category of port."""
        return port.type or self._detector.detect_type(port)

    def process_ports(self, ports: Sequence[PortInfo]) -> ProcessResult:
        """
        Categorize ``ports`` and bucket them into groups.

        Groups follow the preset priority order and contain their ports
        sorted by port number; empty categories are omitted.
        """
        typed = [replace(port, type=self.categorize_port(port)) for port in ports]

        buckets: dict[str, list[PortInfo]] = {}
        for port in typed:
            buckets.setdefault(port.type, []).append(port)

        order = {preset.name: i for i, preset in enumerate(self._detector.presets)}
        groups = [
            PortGroup(id=name, type=name, ports=sorted(members, key=lambda p: (p.port, p.pid)))
            for name, members in sorted(
                buckets.items(), key=lambda item: (order.get(item[0], len(order)), item[0])
            )
        ]
        return ProcessResult(ports=typed, groups=groups)
