"""Glob filters and sorting applied to grouped ports."""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum
from fnmatch import fnmatchcase

from porttop.models import PortGroup, PortInfo
from porttop.processor import PortProcessor


class SortKey(Enum):
    """Sort keys for the port list."""

    PORT = "port"
    PROCESS = "process"
    PID = "pid"
    USER = "user"


SORT_FUNCS = {
    SortKey.PORT: lambda p: p.port,
    SortKey.PROCESS: lambda p: p.process_name.lower(),
    SortKey.PID: lambda p: p.pid,
    SortKey.USER: lambda p: p.user.lower(),
}


@dataclass(slots=True, frozen=True)
class FilterOptions:
    """Filters given on the command line; globs are case-sensitive."""

    type: str | None = None
    user: str | None = None
    process: str | None = None
    sort: SortKey | None = None

    @property
    def active(self) -> bool:
        """Whether any filter is set."""
        return bool(self.type or self.user or self.process or self.sort)


def filter_by_type(ports: Iterable[PortInfo], pattern: str, processor: PortProcessor) -> list[PortInfo]:
    return [p for p in ports if fnmatchcase(processor.categorize_port(p), pattern)]


def filter_by_user(ports: Iterable[PortInfo], pattern: str) -> list[PortInfo]:
    return [p for p in ports if fnmatchcase(p.user, pattern)]


def filter_by_process(ports: Iterable[PortInfo], pattern: str) -> list[PortInfo]:
    return [
        p for p in ports if fnmatchcase(p.process_name, pattern) or fnmatchcase(p.command, pattern)
    ]


def sort_ports(ports: Iterable[PortInfo], key: SortKey) -> list[PortInfo]:
    """Stable sort by ``key``, ties broken by port then pid."""
    return sorted(ports, key=lambda p: (SORT_FUNCS[key](p), p.port, p.pid))


def apply_filters(
    groups: Iterable[PortGroup],
    options: FilterOptions,
    processor: PortProcessor,
) -> list[PortGroup]:
    """Filter and sort the ports of every group, dropping groups left empty."""
    result: list[PortGroup] = []
    for group in groups:
        ports = list(group.ports)

        if options.type and not fnmatchcase(group.type, options.type):
            ports = filter_by_type(ports, options.type, processor)
        if options.user:
            ports = filter_by_user(ports, options.user)
        if options.process:
            ports = filter_by_process(ports, options.process)
        if options.sort:
            ports = sort_ports(ports, options.sort)

        if ports:
            result.append(replace(group, ports=ports))
    return result


def matches_search(port: PortInfo, text: str) -> bool:
    """Whether ``port`` matches the dashboard's search text."""
    if not text:
        return True
    if text in str(port.port):
        return True
    needle = text.lower()
    return needle in port.process_name.lower() or needle in port.command.lower()
