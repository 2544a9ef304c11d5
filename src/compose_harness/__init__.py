"""
compose-harness: docker-compose environments for integration tests

Brings up the services of a compose manifest, waits until they are ready,
exposes their resolved endpoints and tears them down afterwards.
"""

__version__ = "0.1.0"
__author__ = "compose-harness contributors"

from .composition import CompositionBuilder, DockerComposition
from .config import HarnessConfig
from .container import Container, ContainerCache
from .errors import (
    ConfigurationError,
    ContainerNotRunningError,
    HarnessError,
    LifecycleError,
    PortNotExposedError,
    ProcessExecutionError,
    ServiceWaitError,
    WaitTimeoutError,
)
from .log_collection import DoNothingLogCollector, FileLogCollector, LogCollector
from .logging_config import setup_logging
from .machine import DockerMachine
from .models import LifecycleState, SuccessOrFailure
from .ports import DockerPort
from .waiting import (
    AllPortsOpen,
    FunctionCheck,
    HttpRespondsOn,
    ReadinessCheck,
    ReadinessWaiter,
    to_have_all_ports_open,
    to_respond_over_http,
)

__all__ = [
    "AllPortsOpen",
    "CompositionBuilder",
    "ConfigurationError",
    "Container",
    "ContainerCache",
    "ContainerNotRunningError",
    "DockerComposition",
    "DockerMachine",
    "DockerPort",
    "DoNothingLogCollector",
    "FileLogCollector",
    "FunctionCheck",
    "HarnessConfig",
    "HarnessError",
    "HttpRespondsOn",
    "LifecycleError",
    "LifecycleState",
    "LogCollector",
    "PortNotExposedError",
    "ProcessExecutionError",
    "ReadinessCheck",
    "ReadinessWaiter",
    "ServiceWaitError",
    "SuccessOrFailure",
    "WaitTimeoutError",
    "setup_logging",
    "to_have_all_ports_open",
    "to_respond_over_http",
]
