"""
Container log collection

Collectors stream service logs while a composition is running. The
file collector follows each service in a background thread and must be
stopped explicitly; stopping waits for every follower to finish.
"""

import abc
import logging
import subprocess
import threading
from pathlib import Path
from typing import List, Tuple, Union

from .errors import HarnessError, LifecycleError

logger = logging.getLogger(__name__)


class LogCollector(abc.ABC):
    """Streams logs of all services of a composition to a sink."""

    @abc.abstractmethod
    def start_collecting(self, compose) -> None:
        """Begin collecting logs from the compose accessor's services."""

    @abc.abstractmethod
    def stop_collecting(self) -> None:
        """Flush and stop collecting; a no-op if collection never started."""


class DoNothingLogCollector(LogCollector):
    """Default collector that discards logs."""

    def start_collecting(self, compose) -> None:
        pass

    def stop_collecting(self) -> None:
        pass


class FileLogCollector(LogCollector):
    """Writes the logs of each service to <directory>/<service>.log."""

    def __init__(self, directory: Union[str, Path], stop_timeout: float = 10.0):
        """
        Initialize file log collector.

        Args:
            directory: Existing directory to write log files into
            stop_timeout: Seconds to wait for each follower on stop
        """
        self.directory = Path(directory)
        self.stop_timeout = stop_timeout
        self._stop_event = threading.Event()
        self._followers: List[Tuple[subprocess.Popen, threading.Thread]] = []
        self._started = False

    @property
    def is_collecting(self) -> bool:
        return self._started

    def start_collecting(self, compose) -> None:
        """
        Start one follower per declared service.

        Args:
            compose: Compose accessor providing files and logs_process()

        Raises:
            LifecycleError: If collection is already running
            HarnessError: If a follower cannot be started
        """
        if self._started:
            raise LifecycleError("Log collection has already been started")

        services = compose.files.service_names()
        logger.info(f"Collecting logs for {len(services)} service(s) into {self.directory}")

        self._stop_event.clear()
        self._started = True
        try:
            for service in services:
                self._start_follower(compose, service)
        except HarnessError:
            self.stop_collecting()
            raise

    def _start_follower(self, compose, service: str) -> None:
        log_file = self.directory / f"{service}.log"
        process = compose.logs_process(service)
        thread = threading.Thread(
            target=self._follow,
            args=(service, process, log_file),
            name=f"log-collector-{service}",
            daemon=True,
        )
        self._followers.append((process, thread))
        thread.start()

    def _follow(self, service: str, process: subprocess.Popen, log_file: Path) -> None:
        try:
            with open(log_file, "w", encoding="utf-8") as f:
                for line in process.stdout:
                    f.write(line)
                    f.flush()
        except (OSError, ValueError) as e:
            # ValueError: pipe closed underneath us during shutdown
            if not self._stop_event.is_set():
                logger.error(f"Log collection for '{service}' failed: {e}")
        logger.debug(f"Stopped collecting logs for '{service}'")

    def stop_collecting(self) -> None:
        """Signal every follower to stop and wait for it to finish."""
        if not self._started:
            return

        self._stop_event.set()
        for process, _ in self._followers:
            if process.poll() is None:
                process.terminate()

        for process, thread in self._followers:
            try:
                process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"Log follower {process.pid} did not exit, killing it")
                process.kill()
                process.wait()
            thread.join(timeout=self.stop_timeout)
            if thread.is_alive():
                logger.warning(f"Log collector thread {thread.name} is still running")

        self._followers = []
        self._started = False
        logger.debug("Log collection stopped")
