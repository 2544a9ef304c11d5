"""
Container handles

A Container is a re-fetchable view over one logical service: every
query goes back to the compose tool. The ContainerCache hands out one
handle per service name for the lifetime of a composition.
"""

import logging
from typing import Callable, Dict, List, Optional

from .errors import WaitTimeoutError
from .machine import DockerMachine
from .models import SuccessOrFailure
from .ports import DEFAULT_CONNECT_TIMEOUT, DEFAULT_HTTP_TIMEOUT, DockerPort, EndpointResolver
from .waiting import AllPortsOpen, ReadinessWaiter

logger = logging.getLogger(__name__)


class Container:
    """View over one service of a running composition."""

    def __init__(self, name: str, resolver: EndpointResolver, waiter: ReadinessWaiter):
        self.name = name
        self._resolver = resolver
        self._waiter = waiter

    def is_running(self) -> bool:
        return self._resolver.compose.is_running(self.name)

    def ports(self) -> List[DockerPort]:
        """Get the external endpoint of every declared port."""
        return self._resolver.external_endpoints(self.name)

    def port_mapped_externally_to(self, internal_port: int) -> DockerPort:
        return self._resolver.resolve_external(self.name, internal_port)

    def port_mapped_internally_to(self, internal_port: int) -> DockerPort:
        return self._resolver.resolve_internal(self.name, internal_port)

    def check_ports_open(self, connect_timeout: float = DEFAULT_CONNECT_TIMEOUT) -> SuccessOrFailure:
        """
        Probe every declared port once.

        Returns:
            Success if every port accepts a TCP connection, failure
            listing the closed ports otherwise

        Raises:
            ContainerNotRunningError: If the service is not running
        """
        closed = [port for port in self.ports() if not port.is_listening_now(connect_timeout)]
        if closed:
            listing = ", ".join(f"{p.internal_port} ({p})" for p in closed)
            return SuccessOrFailure.failure(f"ports not open on '{self.name}': {listing}")
        return SuccessOrFailure.success()

    def are_all_ports_open(self) -> bool:
        return self.check_ports_open().succeeded()

    def check_http_port(
        self,
        internal_port: int,
        url_builder: Callable[[DockerPort], str],
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> SuccessOrFailure:
        """Issue one GET against a URL built from the external endpoint of a port."""
        return self.port_mapped_externally_to(internal_port).check_http(url_builder, timeout)

    def wait_for_ports(self, timeout: float) -> bool:
        """
        Wait until every declared port accepts connections.

        Args:
            timeout: Maximum time to wait in seconds

        Returns:
            True once all ports are open, False on timeout
        """
        check = AllPortsOpen().bounded_by(timeout)
        try:
            self._waiter.wait_until(lambda: check.evaluate(self), timeout, f"{self.name} ports")
        except WaitTimeoutError as e:
            logger.info(str(e))
            return False
        return True

    def wait_for_http_port(
        self,
        internal_port: int,
        url_builder: Callable[[DockerPort], str],
        timeout: float,
    ) -> bool:
        """
        Wait until a GET against the built URL returns a 2xx status.

        Args:
            internal_port: Declared port to resolve externally
            url_builder: Builds the URL from the resolved endpoint
            timeout: Maximum time to wait in seconds

        Returns:
            True once the endpoint responds successfully, False on timeout

        Raises:
            PortNotExposedError: If the port is not declared for the service
        """
        request_timeout = min(DEFAULT_HTTP_TIMEOUT, timeout)
        try:
            self._waiter.wait_until(
                lambda: self.check_http_port(internal_port, url_builder, request_timeout),
                timeout,
                f"{self.name} HTTP port {internal_port}",
            )
        except WaitTimeoutError as e:
            logger.info(str(e))
            return False
        return True

    def __repr__(self) -> str:
        return f"Container(name={self.name!r})"


class ContainerCache:
    """
    Hands out one Container per service name.

    Handles are created during configuration; afterwards the cache is
    only read, so concurrent lookups of known names need no locking.
    """

    def __init__(
        self,
        compose,
        machine: Optional[DockerMachine] = None,
        waiter: Optional[ReadinessWaiter] = None,
    ):
        self._resolver = EndpointResolver(compose, machine)
        self._waiter = waiter or ReadinessWaiter()
        self._containers: Dict[str, Container] = {}

    def get(self, name: str) -> Container:
        container = self._containers.get(name)
        if container is None:
            container = Container(name, self._resolver, self._waiter)
            self._containers[name] = container
        return container

    def names(self) -> List[str]:
        return list(self._containers)

    def __contains__(self, name: object) -> bool:
        return name in self._containers

    def __len__(self) -> int:
        return len(self._containers)
