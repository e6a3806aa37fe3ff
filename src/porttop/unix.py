"""Unix (Linux and macOS) adapter built on lsof and ps."""

import asyncio
import re
from collections.abc import Sequence

import structlog

from porttop.adapter import PlatformAdapter, dedupe_ports
from porttop.models import PortInfo, ProcessMetadata
from porttop.runner import CommandResult

log = structlog.get_logger()

# Most specific first, anchored to the end so times inside the command are ignored
ETIME_PATTERNS = (
    re.compile(r"(?:^|\s)(?P<days>\d+)-(?P<hours>\d{1,2}):(?P<minutes>\d{2}):(?P<seconds>\d{2})$"),
    re.compile(r"(?:^|\s)(?P<hours>\d{1,2}):(?P<minutes>\d{2}):(?P<seconds>\d{2})$"),
    re.compile(r"(?:^|\s)(?P<minutes>\d{1,2}):(?P<seconds>\d{2})$"),
)

ADDRESS_RE = re.compile(r"^(?P<host>\*|\[[^\]]*\]|[^\s:]+):(?P<port>\d+)$")


def _match_etime(text: str) -> re.Match[str] | None:
    text = text.rstrip()
    for pattern in ETIME_PATTERNS:
        match = pattern.search(text)
        if match:
            return match
    return None


def _etime_seconds(match: re.Match[str]) -> int | None:
    parts = match.groupdict()
    total = (
        int(parts.get("days") or 0) * 86400
        + int(parts.get("hours") or 0) * 3600
        + int(parts["minutes"]) * 60
        + int(parts["seconds"])
    )
    return total if total > 0 else None


def parse_etime(text: str) -> int | None:
    """
    Convert a ps etime value (``[[dd-]hh:]mm:ss``) at the end of ``text``
    to seconds.

    Returns None when nothing matches or the elapsed time is zero.
    """
    match = _match_etime(text)
    if match is None:
        return None
    return _etime_seconds(match)


def parse_ps_output(output: str) -> dict[int, ProcessMetadata]:
    """Parse ``ps -o pid=,command=,etime=`` rows into metadata by pid."""
    result: dict[int, ProcessMetadata] = {}
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        pid_text, _, rest = line.partition(" ")
        if not pid_text.isdigit():
            continue

        match = _match_etime(rest)
        if match:
            command = rest[: match.start()].strip()
            lifetime = _etime_seconds(match)
        else:
            command = rest.strip()
            lifetime = None
        result[int(pid_text)] = ProcessMetadata(command=command or "unknown", lifetime=lifetime)
    return result


def parse_lsof_cwd(output: str) -> dict[int, str]:
    """Pair ``p<pid>`` marker lines with the following ``n<path>`` line."""
    result: dict[int, str] = {}
    current: int | None = None
    for line in output.splitlines():
        if line.startswith("p"):
            current = int(line[1:]) if line[1:].isdigit() else None
        elif line.startswith("n") and current is not None:
            result[current] = line[1:]
            current = None
    return result


def parse_lsof_listing(output: str) -> list[PortInfo]:
    """
    Parse ``lsof -i -P -n`` output, keeping only listening IPv4/IPv6 sockets.

    Columns: COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME. Lines of any
    other shape are skipped.
    """
    ports: list[PortInfo] = []
    for line in output.splitlines():
        if not line.strip() or line.startswith("COMMAND"):
            continue

        parts = line.split()
        if len(parts) < 9:
            continue

        process_name, pid_text, user, _fd, sock_type = parts[:5]
        node = parts[7]
        name = " ".join(parts[8:])

        if sock_type not in ("IPv4", "IPv6"):
            continue
        if "(LISTEN)" not in name:
            continue
        if not pid_text.isdigit():
            continue

        match = ADDRESS_RE.match(name.split()[0])
        if not match:
            continue
        port = int(match.group("port"))
        if not 1 <= port <= 65535:
            continue

        ports.append(
            PortInfo(
                port=port,
                protocol="UDP" if node.upper() == "UDP" else "TCP",
                pid=int(pid_text),
                process_name=process_name,
                user=user,
            )
        )
    return dedupe_ports(ports)


class UnixAdapter(PlatformAdapter):
    """Adapter for Linux and macOS."""

    listing_tool = "lsof"

    def listing_command(self) -> list[str]:
        return ["lsof", "-i", "-P", "-n"]

    def is_empty_listing(self, result: CommandResult) -> bool:
        # lsof exits 1 without a message when no socket matches
        return result.exit_code == 1 and not result.stderr.strip() and not result.stdout.strip()

    def parse_listing(self, output: str) -> list[PortInfo]:
        return parse_lsof_listing(output)

    async def fetch_metadata(self, pids: Sequence[int]) -> dict[int, ProcessMetadata]:
        if not pids:
            return {}

        processes, cwds = await asyncio.gather(
            self._fetch_ps(pids),
            self._fetch_cwd(pids),
        )

        result: dict[int, ProcessMetadata] = {}
        for pid in pids:
            info = processes.get(pid)
            cwd = cwds.get(pid)
            if info is None and cwd is None:
                continue
            result[pid] = ProcessMetadata(
                command=info.command if info else "unknown",
                cwd=cwd,
                lifetime=info.lifetime if info else None,
            )
        return result

    async def _fetch_ps(self, pids: Sequence[int]) -> dict[int, ProcessMetadata]:
        pid_list = ",".join(str(pid) for pid in pids)
        try:
            result = await self._runner.run(
                ["ps", "-o", "pid=,command=,etime=", "-ww", "-p", pid_list]
            )
        except OSError as exc:
            log.warning("ps_failed", error=str(exc))
            return {}
        # ps exits 1 when some pids have gone; the remaining rows are still valid
        return parse_ps_output(result.stdout)

    async def _fetch_cwd(self, pids: Sequence[int]) -> dict[int, str]:
        pid_list = ",".join(str(pid) for pid in pids)
        try:
            result = await self._runner.run(["lsof", "-p", pid_list, "-a", "-d", "cwd", "-Fn"])
        except OSError as exc:
            log.warning("lsof_cwd_failed", error=str(exc))
            return {}
        return parse_lsof_cwd(result.stdout)

    def kill_command(self, pid: int, force: bool) -> list[str]:
        return ["kill", "-9" if force else "-TERM", str(pid)]

    def liveness_command(self, pid: int) -> list[str]:
        return ["ps", "-p", str(pid)]

    def parse_liveness(self, pid: int, result: CommandResult) -> bool:
        return result.exit_code == 0

    async def get_process_command(self, pid: int) -> str:
        try:
            result = await self._runner.run(["ps", "-p", str(pid), "-o", "command=", "-ww"])
            if result.exit_code == 0 and result.stdout.strip():
                return result.stdout.strip()
            metadata = await self.resolve_metadata([pid])
            return metadata[pid].command
        except OSError:
            log.warning("command_lookup_failed", pid=pid)
            return "unknown"
