"""Windows adapter built on netstat, wmic, tasklist and taskkill."""

import asyncio
import ntpath
import re
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime

import psutil
import structlog

from porttop.adapter import PlatformAdapter, dedupe_ports
from porttop.models import PortInfo, ProcessMetadata
from porttop.runner import CommandResult

log = structlog.get_logger()

LOCAL_ADDRESS_RE = re.compile(r":(?P<port>\d+)$")


def parse_creation_date(value: str, now: datetime | None = None) -> int | None:
    """
    Convert a WMI creation date (``YYYYMMDDHHmmss.ffffff+zzz``) to elapsed
    seconds.

    The leading 14 characters are read as local time. Returns None for short
    or malformed values and for dates that are not in the past.
    """
    if not value or len(value) < 14:
        return None
    stamp = value[:14]
    if not stamp.isdigit():
        return None
    try:
        created = datetime.strptime(stamp, "%Y%m%d%H%M%S")
    except ValueError:
        return None

    elapsed = int(((now or datetime.now()) - created).total_seconds())
    return elapsed if elapsed > 0 else None


def parse_netstat(output: str) -> list[PortInfo]:
    """
    Parse ``netstat -ano`` output into listening sockets.

    A row looks like ``TCP  0.0.0.0:3000  0.0.0.0:0  LISTENING  12345``: the
    state literal precedes the owning pid, which is always the last column.
    One invocation can report the same socket more than once (IPv4 and IPv6
    wildcard binds), so rows are deduplicated by (port, pid).
    """
    ports: list[PortInfo] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5:
            continue

        protocol = parts[0].upper()
        if protocol not in ("TCP", "UDP"):
            continue
        if parts[-2] != "LISTENING":
            continue

        match = LOCAL_ADDRESS_RE.search(parts[1])
        if not match or not parts[-1].isdigit():
            continue
        port = int(match.group("port"))
        if not 1 <= port <= 65535:
            continue

        ports.append(
            PortInfo(
                port=port,
                protocol=protocol,
                pid=int(parts[-1]),
                process_name="",
            )
        )
    return dedupe_ports(ports)


def parse_wmic_list(output: str) -> dict[int, dict[str, str]]:
    """
    Parse ``wmic ... /format:list`` output into property dicts by ProcessId.

    Records are runs of ``Key=Value`` lines separated by blank lines; a
    repeated key also starts a new record. Property order within a record
    does not matter.
    """
    records: dict[int, dict[str, str]] = {}
    current: dict[str, str] = {}

    def flush() -> None:
        pid_text = current.get("ProcessId", "")
        if pid_text.isdigit():
            records[int(pid_text)] = dict(current)
        current.clear()

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            flush()
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        if key in current:
            flush()
        current[key] = value.strip()
    flush()
    return records


class WindowsAdapter(PlatformAdapter):
    """
    Adapter for Windows.

    There is no portable way to read another process's working directory,
    so ``cwd`` is the directory containing the executable. It is an
    approximation, not the true working directory.
    """

    listing_tool = "netstat"

    def listing_command(self) -> list[str]:
        return ["netstat", "-ano"]

    def parse_listing(self, output: str) -> list[PortInfo]:
        return parse_netstat(output)

    async def detect_ports(self) -> list[PortInfo]:
        ports = await super().detect_ports()
        identities = {pid: process_identity(pid) for pid in dict.fromkeys(p.pid for p in ports)}
        return [
            replace(port, process_name=identities[port.pid][0], user=identities[port.pid][1])
            for port in ports
        ]

    async def fetch_metadata(self, pids: Sequence[int]) -> dict[int, ProcessMetadata]:
        if not pids:
            return {}

        commands, paths, dates = await asyncio.gather(
            self._query(pids, "CommandLine"),
            self._query(pids, "ExecutablePath"),
            self._query(pids, "CreationDate"),
        )

        result: dict[int, ProcessMetadata] = {}
        for pid in pids:
            exe_path = paths.get(pid, "")
            result[pid] = ProcessMetadata(
                command=commands.get(pid) or "unknown",
                cwd=ntpath.dirname(exe_path) if exe_path else None,
                lifetime=parse_creation_date(dates.get(pid, "")),
            )
        return result

    async def _query(self, pids: Sequence[int], prop: str) -> dict[int, str]:
        """Fetch one WMI property for every pid in a single query."""
        where = " OR ".join(f"ProcessId={pid}" for pid in pids)
        argv = ["wmic", "process", "where", f"({where})", "get", f"ProcessId,{prop}", "/format:list"]
        try:
            result = await self._runner.run(argv)
        except OSError as exc:
            log.warning("wmic_failed", prop=prop, error=str(exc))
            return {}
        if result.exit_code != 0:
            log.warning("wmic_failed", prop=prop, exit_code=result.exit_code, stderr=result.stderr.strip())
            return {}
        return {
            pid: record[prop]
            for pid, record in parse_wmic_list(result.stdout).items()
            if record.get(prop)
        }

    def kill_command(self, pid: int, force: bool) -> list[str]:
        if force:
            return ["taskkill", "/F", "/PID", str(pid)]
        return ["taskkill", "/PID", str(pid)]

    def liveness_command(self, pid: int) -> list[str]:
        return ["tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV", "/NH"]

    def parse_liveness(self, pid: int, result: CommandResult) -> bool:
        # With no match tasklist still exits 0 and prints an INFO line
        if result.exit_code != 0:
            return False
        return f'"{pid}"' in result.stdout

    async def get_process_command(self, pid: int) -> str:
        metadata = await self.resolve_metadata([pid])
        return metadata[pid].command


def process_identity(pid: int) -> tuple[str, str]:
    """
    Look up the image name and owner of ``pid``.

    netstat only reports pids, so both come from psutil. Processes that exited
    or deny access get a placeholder name and an empty user.
    """
    name, user = f"pid-{pid}", ""
    try:
        proc = psutil.Process(pid)
        with proc.oneshot():
            name = proc.name() or name
            try:
                user = proc.username() or ""
            except psutil.AccessDenied:
                user = ""
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        pass
    return name, user
