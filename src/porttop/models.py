"""Data models for porttop."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class PortInfo:
    """Immutable record of one listening socket and its owning process."""

    port: int
    protocol: str  # 'TCP' or 'UDP'
    pid: int
    process_name: str
    command: str = ""  # Empty until enriched
    cwd: str | None = None
    user: str = ""
    lifetime: int | None = None  # Seconds since process start
    type: str | None = None  # Category, filled by PortProcessor


@dataclass(slots=True, frozen=True)
class ProcessMetadata:
    """Batch-resolved process details, cached per pid."""

    command: str
    cwd: str | None = None
    lifetime: int | None = None


UNKNOWN_METADATA = ProcessMetadata(command="unknown")


@dataclass(slots=True)
class PortGroup:
    """Ports sharing a category."""

    id: str
    type: str
    ports: list[PortInfo] = field(default_factory=list)
    collapsed: bool = False


@dataclass(slots=True, frozen=True)
class KillResult:
    """Outcome of killing every process bound to a port."""

    success: bool
    killed: list[PortInfo]
    failed: list[PortInfo]
    message: str
