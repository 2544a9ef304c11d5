"""
Exception types raised by compose-harness

Setup errors abort the current lifecycle phase, query errors are fatal only
to the calling query.
"""

from typing import Dict, List, Optional, Sequence


class HarnessError(Exception):
    """Base class for all compose-harness errors."""
    pass


class ConfigurationError(HarnessError):
    """Invalid harness configuration (bad log directory, missing manifest, ...)."""
    pass


class LifecycleError(HarnessError):
    """Lifecycle entry point invoked from a state that does not allow it."""
    pass


class ProcessExecutionError(HarnessError):
    """An external tool invocation failed or was interrupted."""

    def __init__(
        self,
        command: Sequence[str],
        return_code: Optional[int] = None,
        output: str = "",
        interrupted: bool = False,
        reason: Optional[str] = None,
    ):
        self.command: List[str] = list(command)
        self.return_code = return_code
        self.output = output
        self.interrupted = interrupted

        joined = " ".join(self.command)
        if reason:
            message = f"'{joined}' {reason}"
        elif interrupted:
            message = f"'{joined}' was interrupted"
        else:
            message = f"'{joined}' returned exit code {return_code}"
        if output.strip():
            message += f"\nThe output was:\n{output.strip()}"
        super().__init__(message)


class WaitTimeoutError(HarnessError):
    """A readiness check never returned true within its timeout."""

    def __init__(
        self,
        target: str,
        timeout: float,
        last_failure: Optional[str] = None,
        attempts: int = 0,
    ):
        self.target = target
        self.timeout = timeout
        self.last_failure = last_failure
        self.attempts = attempts

        message = f"'{target}' failed to pass startup check within {timeout:g}s"
        if last_failure:
            message += f": {last_failure}"
        super().__init__(message)


class ServiceWaitError(WaitTimeoutError):
    """One or more registered services failed their readiness checks."""

    def __init__(self, failures: Dict[str, WaitTimeoutError]):
        if not failures:
            raise ValueError("ServiceWaitError requires at least one failure")
        self.failures = dict(failures)
        first = next(iter(self.failures.values()))
        self.target = first.target
        self.timeout = first.timeout
        self.last_failure = first.last_failure
        self.attempts = first.attempts
        self.service_names = list(self.failures)

        if len(self.failures) == 1:
            message = str(first)
        else:
            details = "\n".join(f"  - {error}" for error in self.failures.values())
            message = (
                f"{len(self.failures)} services failed to pass startup check "
                f"({', '.join(self.service_names)}):\n{details}"
            )
        HarnessError.__init__(self, message)


class PortNotExposedError(HarnessError):
    """The queried port is not declared for the service."""

    def __init__(self, service_name: str, port: int, declared_ports: Sequence[int] = ()):
        self.service_name = service_name
        self.port = port
        self.declared_ports = list(declared_ports)
        declared = ", ".join(str(p) for p in self.declared_ports) or "none"
        super().__init__(
            f"No port {port} declared for container '{service_name}' (declared ports: {declared})"
        )


class ContainerNotRunningError(HarnessError):
    """The queried service has no running container."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(f"Container '{service_name}' is not running")
