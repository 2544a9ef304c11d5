"""
Data models for compose-harness

Defines the lifecycle states of a composition and result classes
for readiness evaluation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class LifecycleState(Enum):
    """States of a composition from configuration to teardown."""

    CONFIGURED = "configured"
    BUILDING = "building"
    STARTING = "starting"
    WAITING_FOR_SERVICES = "waiting_for_services"
    RUNNING = "running"
    TEARING_DOWN = "tearing_down"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class SuccessOrFailure:
    """Result of a single readiness evaluation."""

    _failure_message: Optional[str] = None

    @classmethod
    def success(cls) -> "SuccessOrFailure":
        return cls()

    @classmethod
    def failure(cls, message: str) -> "SuccessOrFailure":
        return cls(message or "check failed")

    @classmethod
    def from_bool(cls, value: bool, failure_message: str = "check returned false") -> "SuccessOrFailure":
        return cls.success() if value else cls.failure(failure_message)

    @classmethod
    def of(cls, outcome: Union[bool, "SuccessOrFailure"]) -> "SuccessOrFailure":
        """Normalise a check outcome into a SuccessOrFailure."""
        if isinstance(outcome, SuccessOrFailure):
            return outcome
        return cls.from_bool(bool(outcome))

    def failed(self) -> bool:
        return self._failure_message is not None

    def succeeded(self) -> bool:
        return not self.failed()

    def failure_message(self) -> Optional[str]:
        return self._failure_message

    def __bool__(self) -> bool:
        return self.succeeded()


@dataclass
class WaitResult:
    """Outcome of a successful wait."""

    target: str
    attempts: int
    elapsed_seconds: float

    def get_summary(self) -> str:
        """Get a summary string for the wait."""
        return (
            f"'{self.target}' ready after {self.attempts} attempt(s) "
            f"({self.elapsed_seconds:.2f}s)"
        )
