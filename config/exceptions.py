"""Custom exception hierarchy for Network Scanner.

Each discovery failure mode has its own class so callers can decide
whether it degrades coverage (almost always) or stops a scan from
starting (never, once scanning has begun).
"""

from typing import Optional


class NetworkScannerError(Exception):
    """Base exception for all Network Scanner errors.

    All custom exceptions in this application should inherit from this class.
    This allows catching all application-specific errors with a single except clause.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class SourceUnavailableError(NetworkScannerError):
    """A discovery source cannot run at all.

    Raised when there are issues with:
    - No IPv4 address assigned to this machine
    - No usable network interface
    - The service discovery backend failing to open its sockets

    Examples:
        >>> raise SourceUnavailableError("No local IPv4 address")
    """

    pass


class ProbeError(NetworkScannerError):
    """A single host probe failed.

    Never surfaces past the prober: the host is treated as unreachable.

    Examples:
        >>> raise ProbeError("Connect failed", {"ip": "192.168.1.7"})
    """

    pass


class DiscoveryRegistrationError(NetworkScannerError):
    """One service-type query failed to start or stop.

    Logged; the other queries and the scan carry on.

    Attributes:
        service_type: The DNS-SD type whose registration failed.
        error_code: Backend specific code, if one was reported.
    """

    def __init__(
        self,
        message: str,
        service_type: Optional[str] = None,
        error_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        details = details or {}
        if service_type:
            details["service_type"] = service_type
        if error_code is not None:
            details["error_code"] = error_code
        super().__init__(message, details)
        self.service_type = service_type
        self.error_code = error_code


class ResolutionError(NetworkScannerError):
    """A found service could not be resolved to an address and port.

    Examples:
        >>> raise ResolutionError("Resolve timed out", {"name": "nas._smb._tcp.local."})
    """

    pass


class StaleListenerError(NetworkScannerError):
    """Stop was requested for a query the backend already tore down.

    Treated as a warning: the registration is gone either way.
    """

    pass


class ConfigurationError(NetworkScannerError):
    """Settings and configuration errors.

    Raised when there are issues with:
    - Invalid configuration values
    - Configuration file parsing

    Examples:
        >>> raise ConfigurationError("Invalid probe timeout", {"value": -1})
    """

    pass


class SubprocessError(NetworkScannerError):
    """Subprocess execution errors.

    Raised when there are issues with:
    - Command execution failures
    - Timeouts
    - Command not found or not allowlisted

    Attributes:
        command: The command that failed.
        returncode: Exit code if available.
        stdout: Standard output if available.
        stderr: Standard error if available.

    Examples:
        >>> raise SubprocessError(
        ...     "Command failed",
        ...     details={"command": ["arp", "-an"], "returncode": 1}
        ... )
    """

    def __init__(
        self,
        message: str,
        command: Optional[list] = None,
        returncode: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        details = details or {}
        if command:
            details["command"] = command
        if returncode is not None:
            details["returncode"] = returncode
        if stdout:
            details["stdout"] = stdout[:500]  # Truncate long output
        if stderr:
            details["stderr"] = stderr[:500]

        super().__init__(message, details)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
