"""Port-level actions shared by the dashboard and the one-shot CLI."""

from datetime import datetime

import psutil
import structlog

from porttop.adapter import PlatformAdapter
from porttop.detector import PortDetector
from porttop.errors import DiscoveryError
from porttop.models import KillResult, PortInfo

log = structlog.get_logger()


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{int(size)}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_lifetime(seconds: int | None) -> str:
    """Compact elapsed time: ``Ns``, ``Mm Ss``, ``Hh Mm`` or ``Dd Hh``."""
    if seconds is None:
        return "--"
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    if seconds < 86400:
        return f"{seconds // 3600}h {seconds % 3600 // 60}m"
    return f"{seconds // 86400}d {seconds % 86400 // 3600}h"


def full_command(port: PortInfo) -> str:
    return port.command or f"Unknown command for PID {port.pid}"


def process_details(port: PortInfo) -> str:
    """
    Describe the process behind ``port`` for the Logs view.

    Live output of another process cannot be attached to, so this reports
    what psutil can see instead. Fields the OS refuses to disclose are left
    out.
    """
    lines = [
        f"Process: {port.process_name} (PID: {port.pid})",
        f"Port: {port.port}/{port.protocol}",
        f"Command: {full_command(port)}",
        f"Working directory: {port.cwd or 'unknown'}",
        "",
    ]
    try:
        proc = psutil.Process(port.pid)
        with proc.oneshot():
            lines.append(f"Status: {proc.status()}")
            lines.append(f"Started: {datetime.fromtimestamp(proc.create_time()):%Y-%m-%d %H:%M:%S}")
            try:
                lines.append(f"Memory (RSS): {format_bytes(proc.memory_info().rss)}")
                lines.append(f"Threads: {proc.num_threads()}")
                lines.append(f"Open connections: {len(proc.net_connections())}")
            except psutil.AccessDenied:
                lines.append("Resource usage: access denied")
    except psutil.NoSuchProcess:
        lines.append("Process has exited.")
    except (psutil.AccessDenied, psutil.ZombieProcess):
        lines.append("Process details are not accessible.")

    lines.append("")
    lines.append("Note: live logs are not available. Use the command above to inspect output.")
    return "\n".join(lines)


async def kill_by_port(
    detector: PortDetector,
    adapter: PlatformAdapter,
    port: int,
    force: bool = False,
) -> KillResult:
    """Kill every process currently bound to ``port``."""
    try:
        ports = await detector.detect_ports()
    except DiscoveryError as exc:
        log.error("kill_by_port_discovery_failed", port=port, error=str(exc))
        return KillResult(False, [], [], f"Error killing port {port}: {exc}")

    matching = [p for p in ports if p.port == port]
    if not matching:
        return KillResult(False, [], [], f"No process found using port {port}")

    killed: list[PortInfo] = []
    failed: list[PortInfo] = []
    for info in matching:
        if await adapter.kill_process(info.pid, force):
            killed.append(info)
        else:
            failed.append(info)
    detector.clear_cache()

    if not killed:
        return KillResult(False, [], failed, f"Failed to kill processes on port {port}")
    if failed:
        return KillResult(
            True,
            killed,
            failed,
            f"Killed {len(killed)} process(es) on port {port}, but {len(failed)} failed",
        )
    return KillResult(True, killed, [], f"Successfully killed {len(killed)} process(es) on port {port}")
