"""
Docker Compose invocation

Wraps the compose executable with the manifest files, docker machine
environment and logging applied to every call. All invocations raise
ProcessExecutionError on failure.
"""

import logging
import subprocess
import time
from typing import List, Optional, Sequence

from .compose_files import ComposeFiles
from .config import HarnessConfig
from .errors import ContainerNotRunningError, ProcessExecutionError
from .logging_config import SubprocessLogHandler
from .machine import DockerMachine

logger = logging.getLogger(__name__)

# Output fragments that mean there was nothing left to tear down
ALREADY_GONE_MESSAGES = (
    "no such service",
    "no containers to",
    "no stopped containers",
    "no resource found",
    "no such container",
)


class DockerCompose:
    """
    Accessor for the compose tool of one environment.

    Invocations are serialized by the caller; the accessor holds no
    state beyond its configuration.
    """

    def __init__(
        self,
        files: ComposeFiles,
        machine: Optional[DockerMachine] = None,
        config: Optional[HarnessConfig] = None,
        log_handler: Optional[SubprocessLogHandler] = None,
    ):
        """Initialize compose accessor with manifest files and configuration."""
        self.files = files
        self.machine = machine or DockerMachine.local_machine()
        self.config = config or HarnessConfig()
        self.log_handler = log_handler or SubprocessLogHandler(
            "compose", self.config.log_dir, self.config.enable_file_logging
        )

    def build(self) -> None:
        """Build images for services that declare a build context."""
        self._compose("build")

    def up(self) -> None:
        """Create and start all services in the background."""
        self._compose("up", "-d")

    def down(self) -> None:
        """Stop and remove containers and networks."""
        self._compose("down", tolerate_already_gone=True)

    def kill(self) -> None:
        """Kill any remaining service containers."""
        self._compose("kill", tolerate_already_gone=True)

    def rm(self) -> None:
        """Remove stopped service containers and their anonymous volumes."""
        self._compose("rm", "--force", "-v", tolerate_already_gone=True)

    def ps(self) -> str:
        """Get the raw ps listing of the environment."""
        return self._compose("ps")

    def running_services(self) -> List[str]:
        """List services that currently have a running container."""
        output = self._compose("ps", "--services", "--filter", "status=running")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def is_running(self, service: str) -> bool:
        """Check whether a service has a running container."""
        return service in self.running_services()

    def container_id(self, service: str) -> str:
        """Get the container id of a service, empty if it was never created."""
        output = self._compose("ps", "-q", service)
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        return lines[0] if lines else ""

    def port_mappings(self, service: str) -> str:
        """
        Get the port-inspection output for a service's container.

        Args:
            service: Service name from the manifest

        Returns:
            Raw output in "80/tcp -> 0.0.0.0:32768" form, one mapping per line

        Raises:
            ContainerNotRunningError: If the service has no container
            ProcessExecutionError: If the docker command fails
        """
        container_id = self.container_id(service)
        if not container_id:
            raise ContainerNotRunningError(service)
        return self._execute(self.config.docker_argv() + ["port", container_id])

    def logs_process(self, service: str) -> subprocess.Popen:
        """
        Start following the logs of a service.

        Args:
            service: Service name from the manifest

        Returns:
            Running process with stdout piped as text
        """
        cmd = self._compose_command("logs", "--no-color", "--follow", service)
        self.log_handler.log_command(cmd)
        try:
            return subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                cwd=self.files.working_directory,
                env=self.machine.process_environment(),
            )
        except OSError as e:
            raise ProcessExecutionError(cmd, reason=f"could not be started: {e}") from e

    def _compose_command(self, *args: str) -> List[str]:
        cmd = self.config.compose_argv()
        if self.config.project_name:
            cmd.extend(["-p", self.config.project_name])
        cmd.extend(self.files.command_arguments())
        cmd.extend(args)
        return cmd

    def _compose(self, *args: str, tolerate_already_gone: bool = False) -> str:
        return self._execute(
            self._compose_command(*args), tolerate_already_gone=tolerate_already_gone
        )

    def _execute(self, cmd: Sequence[str], tolerate_already_gone: bool = False) -> str:
        """
        Run a command to completion.

        Args:
            cmd: Command line to run
            tolerate_already_gone: Treat "nothing to act on" failures as success

        Returns:
            Combined stdout and stderr

        Raises:
            ProcessExecutionError: On non-zero exit, start failure or timeout
        """
        cmd = list(cmd)
        self.log_handler.log_command(cmd)
        logger.debug(f"Running: {' '.join(cmd)}")

        timeout = self.config.command_timeout
        start_time = time.time()
        try:
            process = subprocess.run(
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                cwd=self.files.working_directory,
                env=self.machine.process_environment(),
            )
        except subprocess.TimeoutExpired as e:
            output = _as_text(e.stdout) + _as_text(e.stderr)
            self.log_handler.log_output(output, logging.WARNING)
            self.log_handler.log_completion(124, time.time() - start_time)
            raise ProcessExecutionError(
                cmd, output=output, interrupted=True, reason=f"timed out after {timeout}s"
            ) from e
        except OSError as e:
            self.log_handler.log_completion(127, time.time() - start_time)
            raise ProcessExecutionError(cmd, reason=f"could not be started: {e}") from e
        except KeyboardInterrupt as e:
            self.log_handler.log_completion(130, time.time() - start_time)
            raise ProcessExecutionError(cmd, interrupted=True) from e

        elapsed = time.time() - start_time
        output = (process.stdout or "") + (process.stderr or "")
        if process.stdout:
            self.log_handler.log_output(process.stdout)
        if process.stderr:
            self.log_handler.log_output(process.stderr, logging.WARNING)
        self.log_handler.log_completion(process.returncode, elapsed)

        if process.returncode != 0:
            if tolerate_already_gone and _is_already_gone(output):
                logger.debug(f"Ignoring failure of '{' '.join(cmd)}': nothing left to act on")
                return output
            raise ProcessExecutionError(cmd, return_code=process.returncode, output=output)

        return output


def _is_already_gone(output: str) -> bool:
    lowered = output.lower()
    return any(message in lowered for message in ALREADY_GONE_MESSAGES)


def _as_text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
