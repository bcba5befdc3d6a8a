class BasePredicateWaiterError(Exception):
    """Base exception for all predicate waiter errors."""


class WaitTimeoutError(BasePredicateWaiterError, TimeoutError):
    """Raised when a predicate was never observed true before the timeout elapsed.

    Subclasses TimeoutError so callers that only care about "it timed out" can catch the builtin.
    """

    def __init__(
        self,
        message: str,
        timeout: float,
        poll_count: int,
        elapsed_seconds: float,
    ) -> None:
        self.message = message
        self.timeout = timeout
        self.poll_count = poll_count
        self.elapsed_seconds = elapsed_seconds
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        return (
            f"{self.message} (timeout={self.timeout:.3f}s, polls={self.poll_count}, "
            f"elapsed={self.elapsed_seconds:.3f}s)"
        )

    def __str__(self) -> str:
        return self._format_message()


class WaitCancelledError(BasePredicateWaiterError):
    """Raised when a wait was cancelled through its cancel event before the predicate was fulfilled."""

    def __init__(self, poll_count: int, elapsed_seconds: float) -> None:
        self.poll_count = poll_count
        self.elapsed_seconds = elapsed_seconds
        super().__init__(f"Wait cancelled after {poll_count} polls ({elapsed_seconds:.3f}s)")


class ConfigError(BasePredicateWaiterError):
    """Base class for configuration errors."""


class ConfigParseError(ConfigError, ValueError):
    """Raised when a config file or environment override cannot be parsed."""
