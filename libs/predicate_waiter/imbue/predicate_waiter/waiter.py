"""Poll a predicate until it reports true or a timeout elapses.

The predicate is evaluated once immediately, then every poll interval, with the last sleep clipped
to the deadline so that one final evaluation happens when the timeout is reached. A wait therefore
always ends within one poll interval (plus one predicate evaluation) of its timeout.

Exceptions raised by the predicate propagate unchanged: a failing check is a bug in the caller,
not a timing condition, so it is never reported as a timeout.
"""

import asyncio
import functools
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Final
from typing import Self
from typing import TypeVar
from typing import assert_never

from loguru import logger
from pydantic import Field

from imbue.predicate_waiter.config import load_waiter_config
from imbue.predicate_waiter.data_types import FrozenModel
from imbue.predicate_waiter.data_types import WaitOutcome
from imbue.predicate_waiter.data_types import WaitReport
from imbue.predicate_waiter.data_types import WaitRequest
from imbue.predicate_waiter.data_types import WaiterConfig
from imbue.predicate_waiter.errors import WaitCancelledError
from imbue.predicate_waiter.errors import WaitTimeoutError
from imbue.predicate_waiter.logging import log_span

T = TypeVar("T")

DEFAULT_ERROR_MESSAGE: Final[str] = "Condition not met within timeout"


class PredicateWaiter(FrozenModel):
    """Waits for predicates using the timeout and poll interval defaults from its config.

    Holds no per-wait state, so a single instance can be shared freely between threads and tasks.
    """

    config: WaiterConfig = Field(
        default_factory=WaiterConfig,
        description="Defaults for calls that do not pass a timeout or poll interval",
    )

    @classmethod
    def from_config(cls, config_path: Path | None = None) -> Self:
        """Build a waiter from the config file and environment overrides."""
        return cls(config=load_waiter_config(config_path))

    def build_request(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> WaitRequest:
        return WaitRequest(
            predicate=predicate,
            timeout=self.config.default_timeout if timeout is None else timeout,
            poll_interval=self.config.default_poll_interval if poll_interval is None else poll_interval,
        )

    # --- blocking waits ---

    def wait(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> WaitOutcome:
        """Wait for the predicate to return True, returning how the wait ended."""
        return self.wait_with_report(predicate, timeout, poll_interval, cancel_event).outcome

    def wait_with_report(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> WaitReport:
        request = self.build_request(predicate, timeout, poll_interval)
        return _run_wait(request, cancel_event)

    def poll_until(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """Returns True if the predicate was fulfilled, False if the wait timed out or was cancelled."""
        return self.wait(predicate, timeout, poll_interval, cancel_event) == WaitOutcome.FULFILLED

    def wait_or_raise(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: threading.Event | None = None,
        error_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> None:
        """Wait for the predicate to return True.

        Raises WaitTimeoutError if the timeout elapses first, and WaitCancelledError if the
        cancel event is set first.
        """
        request = self.build_request(predicate, timeout, poll_interval)
        report = _run_wait(request, cancel_event)
        _raise_unless_fulfilled(report, request, error_message)

    def poll_for_value(
        self,
        producer: Callable[[], T | None],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> T | None:
        """Poll until the producer returns something other than None.

        Returns the first non-None value, or None if the wait timed out or was cancelled.
        """
        found: list[T] = []
        report = self.wait_with_report(_capturing_predicate(producer, found), timeout, poll_interval, cancel_event)
        return found[0] if report.is_fulfilled else None

    # --- asyncio waits ---

    async def wait_async(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WaitOutcome:
        """Like wait(), but yields the event loop between evaluations."""
        report = await self.wait_with_report_async(predicate, timeout, poll_interval, cancel_event)
        return report.outcome

    async def wait_with_report_async(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WaitReport:
        request = self.build_request(predicate, timeout, poll_interval)
        return await _run_wait_async(request, cancel_event)

    async def wait_or_raise_async(
        self,
        predicate: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
        error_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> None:
        request = self.build_request(predicate, timeout, poll_interval)
        report = await _run_wait_async(request, cancel_event)
        _raise_unless_fulfilled(report, request, error_message)

    async def poll_for_value_async(
        self,
        producer: Callable[[], T | None],
        timeout: float | None = None,
        poll_interval: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> T | None:
        found: list[T] = []
        report = await self.wait_with_report_async(
            _capturing_predicate(producer, found), timeout, poll_interval, cancel_event
        )
        return found[0] if report.is_fulfilled else None


# --- module-level conveniences, using the built-in defaults ---


def wait(
    predicate: Callable[[], bool],
    timeout: float | None = None,
    poll_interval: float | None = None,
    cancel_event: threading.Event | None = None,
) -> WaitOutcome:
    return PredicateWaiter().wait(predicate, timeout, poll_interval, cancel_event)


def poll_until(
    predicate: Callable[[], bool],
    timeout: float | None = None,
    poll_interval: float | None = None,
    cancel_event: threading.Event | None = None,
) -> bool:
    return PredicateWaiter().poll_until(predicate, timeout, poll_interval, cancel_event)


def wait_or_raise(
    predicate: Callable[[], bool],
    timeout: float | None = None,
    poll_interval: float | None = None,
    cancel_event: threading.Event | None = None,
    error_message: str = DEFAULT_ERROR_MESSAGE,
) -> None:
    PredicateWaiter().wait_or_raise(predicate, timeout, poll_interval, cancel_event, error_message)


async def wait_async(
    predicate: Callable[[], bool],
    timeout: float | None = None,
    poll_interval: float | None = None,
    cancel_event: asyncio.Event | None = None,
) -> WaitOutcome:
    return await PredicateWaiter().wait_async(predicate, timeout, poll_interval, cancel_event)


# --- polling loops ---


def _run_wait(request: WaitRequest, cancel_event: threading.Event | None) -> WaitReport:
    # Doubles as the sleep between ticks; wait() only returns True once the cancel event is set
    sleeper = cancel_event if cancel_event is not None else threading.Event()
    poll_count = 0
    with log_span(
        "Waiting for {}",
        request.predicate_name,
        timeout=request.timeout,
        poll_interval=request.poll_interval,
    ):
        start_time = time.monotonic()
        deadline = start_time + request.timeout
        while True:
            poll_count += 1
            if request.predicate():
                outcome = WaitOutcome.FULFILLED
                break
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                outcome = WaitOutcome.TIMED_OUT
                break
            # Event.wait() overflows above TIMEOUT_MAX; a shorter sleep just adds a tick
            if sleeper.wait(timeout=min(request.poll_interval, remaining, threading.TIMEOUT_MAX)):
                outcome = WaitOutcome.CANCELLED
                break
        elapsed = time.monotonic() - start_time
        logger.debug("Wait for {} ended {} after {} polls", request.predicate_name, outcome, poll_count)
    return WaitReport(outcome=outcome, poll_count=poll_count, elapsed_seconds=elapsed)


async def _run_wait_async(request: WaitRequest, cancel_event: asyncio.Event | None) -> WaitReport:
    loop = asyncio.get_running_loop()
    poll_count = 0
    with log_span(
        "Waiting for {}",
        request.predicate_name,
        timeout=request.timeout,
        poll_interval=request.poll_interval,
    ):
        start_time = loop.time()
        deadline = start_time + request.timeout
        while True:
            poll_count += 1
            if request.predicate():
                outcome = WaitOutcome.FULFILLED
                break
            remaining = deadline - loop.time()
            if remaining <= 0:
                outcome = WaitOutcome.TIMED_OUT
                break
            if await _sleep_unless_cancelled(min(request.poll_interval, remaining), cancel_event):
                outcome = WaitOutcome.CANCELLED
                break
        elapsed = loop.time() - start_time
        logger.debug("Wait for {} ended {} after {} polls", request.predicate_name, outcome, poll_count)
    return WaitReport(outcome=outcome, poll_count=poll_count, elapsed_seconds=elapsed)


async def _sleep_unless_cancelled(seconds: float, cancel_event: asyncio.Event | None) -> bool:
    """Sleep for the given time, returning True early if the cancel event gets set."""
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except TimeoutError:
        return False
    return True


def _capturing_predicate(producer: Callable[[], T | None], found: list[T]) -> Callable[[], bool]:
    @functools.wraps(producer)
    def has_value() -> bool:
        value = producer()
        if value is None:
            return False
        found.append(value)
        return True

    return has_value


def _raise_unless_fulfilled(report: WaitReport, request: WaitRequest, error_message: str) -> None:
    match report.outcome:
        case WaitOutcome.FULFILLED:
            return
        case WaitOutcome.TIMED_OUT:
            raise WaitTimeoutError(
                error_message,
                timeout=request.timeout,
                poll_count=report.poll_count,
                elapsed_seconds=report.elapsed_seconds,
            )
        case WaitOutcome.CANCELLED:
            raise WaitCancelledError(poll_count=report.poll_count, elapsed_seconds=report.elapsed_seconds)
        case _ as unreachable:
            assert_never(unreachable)
