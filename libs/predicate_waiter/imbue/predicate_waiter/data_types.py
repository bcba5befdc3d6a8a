from collections.abc import Callable
from enum import StrEnum
from enum import auto
from typing import Final

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from imbue.predicate_waiter.primitives import NonNegativeSeconds
from imbue.predicate_waiter.primitives import PositiveSeconds

# Used when a wait does not pass its own timeout
DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0

# A fulfilled condition is noticed at most this long after it becomes true
DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 0.02


class FrozenModel(BaseModel):
    """Base class for immutable pydantic models that prevent attribute mutation after construction."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=False,
    )


class UpperCaseStrEnum(StrEnum):
    """A StrEnum that automatically converts enum member names to uppercase values."""

    @staticmethod
    def _generate_next_value_(
        name: str,
        start: int,
        count: int,
        last_values: list[str],
    ) -> str:
        return name.upper()


class WaitOutcome(UpperCaseStrEnum):
    """Terminal result of a wait."""

    FULFILLED = auto()
    TIMED_OUT = auto()
    # Only reachable when the caller supplied a cancel event
    CANCELLED = auto()


class WaiterConfig(FrozenModel):
    """Defaults applied when a wait call does not pass an explicit timeout or poll interval."""

    default_timeout: NonNegativeSeconds = Field(
        default=NonNegativeSeconds(DEFAULT_TIMEOUT_SECONDS),
        description="Seconds to wait for a predicate before giving up",
    )
    default_poll_interval: PositiveSeconds = Field(
        default=PositiveSeconds(DEFAULT_POLL_INTERVAL_SECONDS),
        description="Seconds to sleep between predicate evaluations",
    )


class WaitRequest(FrozenModel):
    """A single wait: what to evaluate, for how long, and how often."""

    predicate: Callable[[], bool] = Field(description="Zero-argument check, re-evaluated on every tick")
    timeout: NonNegativeSeconds = Field(description="Seconds after which the wait gives up")
    poll_interval: PositiveSeconds = Field(description="Seconds between successive evaluations")

    @property
    def predicate_name(self) -> str:
        return getattr(self.predicate, "__qualname__", None) or repr(self.predicate)


class WaitReport(FrozenModel):
    """What happened during a finished wait."""

    outcome: WaitOutcome = Field(description="How the wait ended")
    poll_count: int = Field(ge=1, description="Number of times the predicate was evaluated")
    elapsed_seconds: float = Field(ge=0, description="Monotonic time from the start of the call to its end")

    @property
    def is_fulfilled(self) -> bool:
        return self.outcome == WaitOutcome.FULFILLED
