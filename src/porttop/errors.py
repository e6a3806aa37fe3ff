"""Exceptions raised by porttop."""


class PorttopError(Exception):
    """Base class for porttop errors."""


class ConfigError(PorttopError):
    """The configuration file could not be read or is invalid."""


class DiscoveryError(PorttopError):
    """A discovery cycle failed; the previous snapshot stays on screen."""


class InsufficientPrivilegeError(DiscoveryError):
    """The listing tool was denied access to sockets owned by other users."""

    def __init__(self, tool: str, stderr: str = "") -> None:
        self.tool = tool
        self.stderr = stderr
        super().__init__(
            f"{tool}: permission denied. Some ports may require elevated privileges."
        )


class ToolExecutionError(DiscoveryError):
    """An external inspection tool could not be run or exited non-zero."""

    def __init__(self, tool: str, exit_code: int | None, stderr: str = "") -> None:
        self.tool = tool
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or "No error message"
        if exit_code is None:
            message = f"Failed to execute {tool}: {detail}"
        else:
            message = f"{tool} failed with exit code {exit_code}: {detail}"
        super().__init__(message)
