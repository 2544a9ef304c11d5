"""
Port mapping resolution

Parses the port-inspection output of docker and resolves a service's
internally declared ports into endpoints reachable from the test process.
Nothing here is cached: every resolution queries the running environment.
"""

import asyncio
import logging
import re
import socket
from dataclasses import dataclass
from typing import Callable, List, Optional

import aiohttp

from .errors import ContainerNotRunningError, PortNotExposedError
from .machine import DockerMachine
from .models import SuccessOrFailure

logger = logging.getLogger(__name__)

# "80/tcp -> 0.0.0.0:32768" as printed by `docker port`
DOCKER_PORT_LINE = re.compile(
    r"^(?P<internal>\d+)(?:/(?P<protocol>\w+))?\s*->\s*(?P<host>.*):(?P<external>\d+)$"
)

# "0.0.0.0:32768->80/tcp" as printed in the ports column of `ps`
PS_PORT_ENTRY = re.compile(
    r"(?P<host>\[[0-9a-fA-F:]*\]|[0-9a-fA-F:.]*?|[\w.\-]+):(?P<external>\d+)->(?P<internal>\d+)(?:/(?P<protocol>\w+))?"
)

DEFAULT_CONNECT_TIMEOUT = 1.0
DEFAULT_HTTP_TIMEOUT = 5.0


@dataclass(frozen=True)
class PortMapping:
    """One published port as reported by docker."""

    internal_port: int
    protocol: str
    host: str
    external_port: int


@dataclass(frozen=True)
class DockerPort:
    """A resolved endpoint: connect to host:port to reach internal_port."""

    host: str
    port: int
    internal_port: int

    @property
    def external_port(self) -> int:
        return self.port

    def is_listening_now(self, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> bool:
        """Check whether a TCP connection to the endpoint succeeds."""
        try:
            with socket.create_connection((self.host, self.port), timeout=timeout):
                return True
        except OSError as e:
            logger.debug(f"{self.host}:{self.port} not listening: {e}")
            return False

    def check_http(
        self,
        url_builder: Callable[["DockerPort"], str],
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> SuccessOrFailure:
        """
        Issue an HTTP GET against a URL built from this endpoint.

        Args:
            url_builder: Builds the URL from this endpoint
            timeout: Total request timeout in seconds

        Returns:
            Success for a 2xx status; failure describing the status or
            connection problem otherwise
        """
        url = url_builder(self)
        try:
            status = asyncio.run(_fetch_status(url, timeout))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return SuccessOrFailure.failure(f"GET {url} failed: {str(e) or type(e).__name__}")

        if 200 <= status < 300:
            return SuccessOrFailure.success()
        return SuccessOrFailure.failure(f"GET {url} returned status {status}")

    def is_http_responding(
        self,
        url_builder: Callable[["DockerPort"], str],
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> bool:
        """Check whether a GET against the built URL returns a 2xx status."""
        return self.check_http(url_builder, timeout).succeeded()

    def in_format(self, template: str) -> str:
        """Substitute $HOST, $EXTERNAL_PORT and $INTERNAL_PORT in a template."""
        return (
            template.replace("$HOST", self.host)
            .replace("$EXTERNAL_PORT", str(self.port))
            .replace("$INTERNAL_PORT", str(self.internal_port))
        )

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


async def _fetch_status(url: str, timeout: float) -> int:
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        async with session.get(url) as response:
            return response.status


def parse_port_mappings(text: str) -> List[PortMapping]:
    """
    Parse port-inspection output.

    Args:
        text: Output of `docker port` or the ports column of `ps`

    Returns:
        One mapping per internal port, first binding wins
    """
    mappings: List[PortMapping] = []
    seen = set()

    def add(internal: str, protocol: Optional[str], host: str, external: str) -> None:
        key = (int(internal), protocol or "tcp")
        if key in seen:
            return
        seen.add(key)
        mappings.append(PortMapping(int(internal), protocol or "tcp", _strip_brackets(host), int(external)))

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = DOCKER_PORT_LINE.match(line)
        if match:
            add(match["internal"], match["protocol"], match["host"], match["external"])
            continue

        for entry in PS_PORT_ENTRY.finditer(line):
            add(entry["internal"], entry["protocol"], entry["host"], entry["external"])

    return mappings


def _strip_brackets(host: str) -> str:
    host = host.strip()
    if host.startswith("[") and host.endswith("]"):
        return host[1:-1]
    return host


class EndpointResolver:
    """Resolves declared service ports into reachable endpoints."""

    def __init__(self, compose, machine: Optional[DockerMachine] = None):
        """
        Initialize resolver.

        Args:
            compose: Compose accessor providing is_running() and port_mappings()
            machine: Docker machine used to resolve wildcard hosts
        """
        self.compose = compose
        self.machine = machine or getattr(compose, "machine", None) or DockerMachine()

    def declared_ports(self, service: str) -> List[PortMapping]:
        """
        Get the published ports of a running service.

        Raises:
            ContainerNotRunningError: If the service is not running
        """
        if not self.compose.is_running(service):
            raise ContainerNotRunningError(service)
        return parse_port_mappings(self.compose.port_mappings(service))

    def external_endpoints(self, service: str) -> List[DockerPort]:
        """Resolve every declared port of a service to its external endpoint."""
        return [self._external(mapping) for mapping in self.declared_ports(service)]

    def resolve_external(self, service: str, internal_port: int) -> DockerPort:
        """
        Resolve the endpoint the test process uses to reach a port.

        Args:
            service: Service name from the manifest
            internal_port: Port declared inside the container

        Returns:
            DockerPort with the externally reachable host and port

        Raises:
            PortNotExposedError: If the port is not declared
            ContainerNotRunningError: If the service is not running
        """
        return self._external(self._declared(service, internal_port))

    def resolve_internal(self, service: str, internal_port: int) -> DockerPort:
        """
        Resolve the address other containers on the network use for a port.

        Raises:
            PortNotExposedError: If the port is not declared
            ContainerNotRunningError: If the service is not running
        """
        mapping = self._declared(service, internal_port)
        return DockerPort(service, mapping.internal_port, mapping.internal_port)

    def _declared(self, service: str, internal_port: int) -> PortMapping:
        mappings = self.declared_ports(service)
        for mapping in mappings:
            if mapping.internal_port == internal_port:
                return mapping
        raise PortNotExposedError(service, internal_port, [m.internal_port for m in mappings])

    def _external(self, mapping: PortMapping) -> DockerPort:
        return DockerPort(
            self.machine.resolve_host(mapping.host),
            mapping.external_port,
            mapping.internal_port,
        )
