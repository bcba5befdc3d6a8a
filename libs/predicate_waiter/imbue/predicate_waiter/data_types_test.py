"""Tests for the wait data types."""

import pytest
from pydantic import ValidationError

from imbue.predicate_waiter.data_types import DEFAULT_POLL_INTERVAL_SECONDS
from imbue.predicate_waiter.data_types import DEFAULT_TIMEOUT_SECONDS
from imbue.predicate_waiter.data_types import WaitOutcome
from imbue.predicate_waiter.data_types import WaitReport
from imbue.predicate_waiter.data_types import WaitRequest
from imbue.predicate_waiter.data_types import WaiterConfig


def _always_true() -> bool:
    return True


def test_wait_outcome_values_are_upper_case_names() -> None:
    assert WaitOutcome.FULFILLED == "FULFILLED"
    assert WaitOutcome.TIMED_OUT == "TIMED_OUT"
    assert WaitOutcome.CANCELLED == "CANCELLED"


def test_waiter_config_defaults() -> None:
    config = WaiterConfig()

    assert config.default_timeout == DEFAULT_TIMEOUT_SECONDS
    assert config.default_poll_interval == DEFAULT_POLL_INTERVAL_SECONDS


def test_waiter_config_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        WaiterConfig.model_validate({"default_timeout": 1.0, "retries": 3})


def test_waiter_config_is_frozen() -> None:
    config = WaiterConfig()
    with pytest.raises(ValidationError):
        config.default_timeout = 5.0  # type: ignore[misc]


def test_wait_request_accepts_zero_timeout() -> None:
    request = WaitRequest(predicate=_always_true, timeout=0, poll_interval=0.01)

    assert request.timeout == 0.0
    assert request.predicate() is True


def test_wait_request_rejects_negative_timeout() -> None:
    with pytest.raises(ValidationError):
        WaitRequest(predicate=_always_true, timeout=-0.5, poll_interval=0.01)


def test_wait_request_rejects_zero_poll_interval() -> None:
    with pytest.raises(ValidationError):
        WaitRequest(predicate=_always_true, timeout=1.0, poll_interval=0)


def test_wait_request_rejects_non_callable_predicate() -> None:
    with pytest.raises(ValidationError):
        WaitRequest(predicate=True, timeout=1.0, poll_interval=0.01)  # type: ignore[arg-type]


def test_wait_request_predicate_name_uses_qualname() -> None:
    request = WaitRequest(predicate=_always_true, timeout=1.0, poll_interval=0.01)

    assert request.predicate_name == "_always_true"


def test_wait_report_is_fulfilled() -> None:
    fulfilled = WaitReport(outcome=WaitOutcome.FULFILLED, poll_count=1, elapsed_seconds=0.0)
    timed_out = WaitReport(outcome=WaitOutcome.TIMED_OUT, poll_count=4, elapsed_seconds=0.06)

    assert fulfilled.is_fulfilled is True
    assert timed_out.is_fulfilled is False


def test_wait_report_requires_at_least_one_poll() -> None:
    with pytest.raises(ValidationError):
        WaitReport(outcome=WaitOutcome.TIMED_OUT, poll_count=0, elapsed_seconds=0.0)
