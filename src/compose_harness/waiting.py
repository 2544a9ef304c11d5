"""
Readiness waiting

Bounded polling of readiness checks against live containers, and the
built-in checks used to decide when a service is usable by tests.
"""

import abc
import logging
import time
from typing import Any, Callable, Optional, Union

from .errors import ContainerNotRunningError, WaitTimeoutError
from .models import SuccessOrFailure, WaitResult
from .ports import DEFAULT_CONNECT_TIMEOUT, DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05

CheckOutcome = Union[bool, SuccessOrFailure]


class ReadinessWaiter:
    """
    Repeatedly evaluates a predicate until it holds or a timeout expires.

    The first evaluation happens immediately. Between failed attempts the
    calling thread sleeps for the poll interval, never past the deadline,
    so a timed out wait lasts at most timeout + poll_interval plus the
    time spent in the predicate. Exceptions raised by the predicate are
    not retried.
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be greater than zero")
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def wait_until(
        self,
        predicate: Callable[[], CheckOutcome],
        timeout: float,
        target: str,
    ) -> WaitResult:
        """
        Wait for a predicate to hold.

        Args:
            predicate: Returns True or a successful SuccessOrFailure when ready
            timeout: Maximum time to wait in seconds
            target: Name of what is being waited for, used in diagnostics

        Returns:
            WaitResult with the number of attempts and elapsed time

        Raises:
            WaitTimeoutError: If the predicate does not hold before the deadline
        """
        start_time = self._clock()
        deadline = start_time + timeout
        attempts = 0
        last_failure: Optional[str] = None

        while True:
            attempts += 1
            outcome = predicate()
            if isinstance(outcome, SuccessOrFailure):
                ready = outcome.succeeded()
                last_failure = outcome.failure_message() or last_failure
            else:
                ready = bool(outcome)

            if ready:
                result = WaitResult(target, attempts, self._clock() - start_time)
                logger.debug(result.get_summary())
                return result

            now = self._clock()
            if now >= deadline:
                logger.debug(f"Gave up waiting for '{target}' after {attempts} attempt(s)")
                raise WaitTimeoutError(target, timeout, last_failure, attempts)

            self._sleep(min(self.poll_interval, deadline - now))


class ReadinessCheck(abc.ABC):
    """Decides whether a container is ready; must be safe to call repeatedly."""

    @abc.abstractmethod
    def evaluate(self, container) -> CheckOutcome:
        """Evaluate the check once against a container handle."""

    def describe(self) -> str:
        return type(self).__name__

    def bounded_by(self, timeout: float) -> "ReadinessCheck":
        """Return a check whose single evaluation takes no longer than timeout."""
        return self

    def __call__(self, container) -> CheckOutcome:
        return self.evaluate(container)

    def __repr__(self) -> str:
        return f"<{self.describe()}>"


class AllPortsOpen(ReadinessCheck):
    """Ready once every declared port of the container accepts connections."""

    def __init__(self, connect_timeout: float = DEFAULT_CONNECT_TIMEOUT):
        self.connect_timeout = connect_timeout

    def evaluate(self, container) -> CheckOutcome:
        try:
            return container.check_ports_open(self.connect_timeout)
        except ContainerNotRunningError as e:
            return SuccessOrFailure.failure(str(e))

    def bounded_by(self, timeout: float) -> "AllPortsOpen":
        return AllPortsOpen(min(self.connect_timeout, timeout))

    def describe(self) -> str:
        return "all ports open"


class HttpRespondsOn(ReadinessCheck):
    """Ready once a GET against a URL built from an external endpoint returns 2xx."""

    def __init__(
        self,
        internal_port: int,
        url_builder: Callable[[Any], str],
        request_timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.internal_port = internal_port
        self.url_builder = url_builder
        self.request_timeout = request_timeout

    def evaluate(self, container) -> CheckOutcome:
        try:
            return container.check_http_port(
                self.internal_port, self.url_builder, self.request_timeout
            )
        except ContainerNotRunningError as e:
            return SuccessOrFailure.failure(str(e))

    def bounded_by(self, timeout: float) -> "HttpRespondsOn":
        return HttpRespondsOn(
            self.internal_port, self.url_builder, min(self.request_timeout, timeout)
        )

    def describe(self) -> str:
        return f"HTTP success on port {self.internal_port}"


class FunctionCheck(ReadinessCheck):
    """Adapts a caller-supplied callable taking a container handle."""

    def __init__(self, func: Callable[[Any], CheckOutcome], description: Optional[str] = None):
        self.func = func
        self.description = description or getattr(func, "__name__", "custom check")

    def evaluate(self, container) -> CheckOutcome:
        return self.func(container)

    def describe(self) -> str:
        return self.description


def as_check(check: Union[ReadinessCheck, Callable[[Any], CheckOutcome]]) -> ReadinessCheck:
    """Accept a ReadinessCheck or a plain callable."""
    if isinstance(check, ReadinessCheck):
        return check
    if callable(check):
        return FunctionCheck(check)
    raise TypeError(f"Readiness check must be callable, got {type(check).__name__}")


def to_have_all_ports_open() -> ReadinessCheck:
    return AllPortsOpen()


def to_respond_over_http(internal_port: int, url_builder: Callable[[Any], str]) -> ReadinessCheck:
    return HttpRespondsOn(internal_port, url_builder)
