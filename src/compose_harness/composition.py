"""
Docker Compose test environments

A DockerComposition brings up the services of one or more compose files,
waits until every registered service passes its readiness check, exposes
resolved endpoints to tests, and tears everything down afterwards.

Typical use:

    composition = (
        DockerComposition.of("docker-compose.yml")
        .waiting_for_service("db", to_have_all_ports_open())
        .service_timeout(60)
        .save_logs_to("build/docker-logs")
        .build()
    )
    composition.before()
    try:
        port = composition.port_on_container_with_external_mapping("db", 5432)
    finally:
        composition.after()
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from .compose_files import ComposeFiles
from .config import HarnessConfig
from .container import Container, ContainerCache
from .errors import (
    ConfigurationError,
    LifecycleError,
    ServiceWaitError,
    WaitTimeoutError,
)
from .execution import DockerCompose
from .log_collection import DoNothingLogCollector, FileLogCollector, LogCollector
from .machine import DockerMachine
from .models import LifecycleState, WaitResult
from .ports import DockerPort
from .waiting import (
    ReadinessCheck,
    ReadinessWaiter,
    as_check,
    to_have_all_ports_open,
    to_respond_over_http,
)

logger = logging.getLogger(__name__)

STARTABLE_STATES = (LifecycleState.CONFIGURED, LifecycleState.STOPPED)


@dataclass(frozen=True)
class CompositionBuilder:
    """
    Immutable configuration of a composition.

    Every with-option returns a new builder; build() validates the
    configuration and creates the composition.
    """

    compose: Any
    checks: Tuple[Tuple[str, ReadinessCheck], ...] = ()
    timeout: float = 120.0
    poll_interval: float = 0.05
    log_directory: Optional[Path] = None
    log_collector: Optional[LogCollector] = None
    log_stop_timeout: float = 10.0
    parallel: bool = False

    to_have_all_ports_open = staticmethod(to_have_all_ports_open)
    to_respond_over_http = staticmethod(to_respond_over_http)

    def waiting_for_service(
        self, name: str, check: Union[ReadinessCheck, Callable[[Container], Any]]
    ) -> "CompositionBuilder":
        """Register a readiness check; a later registration for the same service replaces it."""
        checks = tuple(entry for entry in self.checks if entry[0] != name)
        return replace(self, checks=checks + ((name, as_check(check)),))

    def service_timeout(self, timeout: Union[float, timedelta]) -> "CompositionBuilder":
        """Set the per-service readiness timeout (seconds or timedelta)."""
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        return replace(self, timeout=float(timeout))

    def save_logs_to(self, path: Union[str, Path]) -> "CompositionBuilder":
        """Archive the logs of every service into a directory."""
        return replace(self, log_directory=Path(path), log_collector=None)

    def with_log_collector(self, collector: LogCollector) -> "CompositionBuilder":
        return replace(self, log_collector=collector, log_directory=None)

    def parallel_waits(self, enabled: bool = True) -> "CompositionBuilder":
        """Wait for all services concurrently instead of one after another."""
        return replace(self, parallel=enabled)

    def build(self) -> "DockerComposition":
        """
        Validate the configuration and create the composition.

        Raises:
            ConfigurationError: If the timeout is not positive or the log
                directory is a file or cannot be created
        """
        if self.timeout <= 0:
            raise ConfigurationError("Service timeout must be greater than zero")

        waiter = ReadinessWaiter(self.poll_interval)
        containers = ContainerCache(self.compose, getattr(self.compose, "machine", None), waiter)
        services_to_wait_for = {
            containers.get(name): check.bounded_by(self.timeout) for name, check in self.checks
        }

        return DockerComposition(
            compose=self.compose,
            services_to_wait_for=services_to_wait_for,
            service_timeout=self.timeout,
            log_collector=self._create_log_collector(),
            containers=containers,
            waiter=waiter,
            parallel_waits=self.parallel,
        )

    def _create_log_collector(self) -> LogCollector:
        if self.log_collector is not None:
            return self.log_collector
        if self.log_directory is None:
            return DoNothingLogCollector()

        if self.log_directory.is_file():
            raise ConfigurationError(f"Log directory cannot be a file: {self.log_directory}")
        try:
            self.log_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Error making log directory {self.log_directory}: {e}")
        return FileLogCollector(self.log_directory, self.log_stop_timeout)


class DockerComposition:
    """
    One docker-compose test environment.

    before() and after() must be called in matching pairs by whatever
    hosts the tests; after() always attempts the full teardown.
    """

    def __init__(
        self,
        compose,
        services_to_wait_for: Mapping[Container, ReadinessCheck],
        service_timeout: float,
        log_collector: LogCollector,
        containers: ContainerCache,
        waiter: ReadinessWaiter,
        parallel_waits: bool = False,
    ):
        self.compose = compose
        self.services_to_wait_for = MappingProxyType(dict(services_to_wait_for))
        self.service_timeout = service_timeout
        self.log_collector = log_collector
        self.containers = containers
        self.parallel_waits = parallel_waits
        self._waiter = waiter
        self._state = LifecycleState.CONFIGURED

    @classmethod
    def of(
        cls,
        *compose_files: Union[str, Path],
        machine: Optional[DockerMachine] = None,
        config: Optional[HarnessConfig] = None,
    ) -> CompositionBuilder:
        """Start configuring a composition from compose file paths."""
        config = config or HarnessConfig()
        compose = DockerCompose(ComposeFiles.from_paths(*compose_files), machine, config)
        return cls.of_compose(compose, config)

    @classmethod
    def of_compose(cls, compose, config: Optional[HarnessConfig] = None) -> CompositionBuilder:
        """Start configuring a composition around an existing compose accessor."""
        config = config or getattr(compose, "config", None) or HarnessConfig()
        return CompositionBuilder(
            compose=compose,
            timeout=config.service_timeout,
            poll_interval=config.poll_interval,
            log_stop_timeout=config.log_stop_timeout,
        )

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _transition(self, state: LifecycleState) -> None:
        logger.debug(f"Composition state: {self._state.value} -> {state.value}")
        self._state = state

    def before(self) -> None:
        """
        Build and start the environment and wait for registered services.

        Raises:
            LifecycleError: If the composition is already started
            ProcessExecutionError: If build or up fails
            ServiceWaitError: If a service does not become ready in time
        """
        if self._state not in STARTABLE_STATES:
            raise LifecycleError(f"Cannot start a composition that is {self._state.value}")

        start_time = time.time()
        succeeded = False
        try:
            logger.info("Starting docker-compose cluster")
            self._transition(LifecycleState.BUILDING)
            self.compose.build()

            self._transition(LifecycleState.STARTING)
            self.compose.up()

            logger.debug("Starting log collection")
            self.log_collector.start_collecting(self.compose)

            self._transition(LifecycleState.WAITING_FOR_SERVICES)
            logger.debug("Waiting for services")
            self._wait_for_services()
            succeeded = True
        finally:
            self._transition(LifecycleState.RUNNING if succeeded else LifecycleState.FAILED)

        logger.info(f"docker-compose cluster started in {time.time() - start_time:.1f}s")

    start = before

    def _wait_for_services(self) -> None:
        entries = list(self.services_to_wait_for.items())
        if self.parallel_waits and len(entries) > 1:
            self._wait_in_parallel(entries)
            return

        for container, check in entries:
            try:
                self._wait_for_service(container, check)
            except WaitTimeoutError as e:
                raise ServiceWaitError({container.name: e}) from e

    def _wait_in_parallel(self, entries) -> None:
        failures: Dict[str, WaitTimeoutError] = {}
        broken_check: Optional[BaseException] = None

        with ThreadPoolExecutor(max_workers=len(entries), thread_name_prefix="service-wait") as pool:
            futures = [
                (container, pool.submit(self._wait_for_service, container, check))
                for container, check in entries
            ]
            for container, future in futures:
                try:
                    future.result()
                except WaitTimeoutError as e:
                    failures[container.name] = e
                except Exception as e:
                    if broken_check is None:
                        broken_check = e

        if broken_check is not None:
            raise broken_check
        if failures:
            raise ServiceWaitError(failures)

    def _wait_for_service(self, container: Container, check: ReadinessCheck) -> WaitResult:
        logger.debug(f"Waiting for service '{container.name}' ({check.describe()})")
        result = self._waiter.wait_until(
            lambda: check.evaluate(container), self.service_timeout, container.name
        )
        logger.info(f"Service '{container.name}' is ready: {result.get_summary()}")
        return result

    def after(self) -> None:
        """
        Tear the environment down: down, kill, rm, then stop log collection.

        Every step is attempted even if an earlier one fails; the first
        failure is raised once all steps have run. Does nothing if the
        composition is already stopped.
        """
        if self._state == LifecycleState.STOPPED:
            logger.debug("docker-compose cluster already stopped")
            return

        self._transition(LifecycleState.TEARING_DOWN)
        logger.info("Killing docker-compose cluster")

        first_error: Optional[Exception] = None
        try:
            for step_name, step in (
                ("down", self.compose.down),
                ("kill", self.compose.kill),
                ("rm", self.compose.rm),
                ("stop log collection", self.log_collector.stop_collecting),
            ):
                try:
                    step()
                except Exception as e:
                    logger.error(f"Error during '{step_name}' while cleaning up: {e}")
                    if first_error is None:
                        first_error = e
        finally:
            self._transition(LifecycleState.STOPPED)

        if first_error is not None:
            raise first_error

    stop = after

    def __enter__(self) -> "DockerComposition":
        try:
            self.before()
        except BaseException:
            try:
                self.after()
            except Exception as cleanup_error:
                logger.error(f"Cleanup after failed start also failed: {cleanup_error}")
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.after()

    def container(self, name: str) -> Container:
        return self.containers.get(name)

    def port_on_container_with_external_mapping(self, container: str, port: int) -> DockerPort:
        """
        Resolve the endpoint the test process uses to reach a container port.

        Raises:
            PortNotExposedError: If the port is not declared for the service
            ContainerNotRunningError: If the service is not running
        """
        return self.containers.get(container).port_mapped_externally_to(port)

    def port_on_container_with_internal_mapping(self, container: str, port: int) -> DockerPort:
        """
        Resolve the address other containers use to reach a container port.

        Raises:
            PortNotExposedError: If the port is not declared for the service
            ContainerNotRunningError: If the service is not running
        """
        return self.containers.get(container).port_mapped_internally_to(port)
