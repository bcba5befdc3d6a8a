"""Root conftest: serializes pytest runs and enforces a test suite time limit.

Most tests here measure wall-clock time, so two pytest processes sharing a machine (for example
from different worktrees) can make each other miss timing bounds. A global file lock makes
concurrent runs queue up instead.

Environment variables:
- PYTEST_MAX_DURATION: override the maximum allowed test suite duration in seconds.
"""

import fcntl
import os
import time
from pathlib import Path
from typing import Final
from typing import TextIO

import pytest

# A constant location in /tmp so all pytest processes can find it
_GLOBAL_TEST_LOCK_PATH: Final[Path] = Path("/tmp/predicate_waiter_pytest_lock")

# The handle must stay open for the whole session so the flock is held.
# The OS releases the lock when the process exits for any reason.
_SESSION_LOCK_HANDLE_ATTR: Final[str] = "_global_test_lock_file_handle"

_LOCAL_MAX_DURATION_SECONDS: Final[float] = 30.0

_CI_MAX_DURATION_SECONDS: Final[float] = 60.0


def is_xdist_worker() -> bool:
    """Return True if we are running as an xdist worker process."""
    return "PYTEST_XDIST_WORKER" in os.environ


def print_lock_message(message: str, fd: int = 2) -> None:
    """Write straight to the file descriptor so the message shows even without pytest's -s flag."""
    os.write(fd, f"\n{message}\n".encode())


def acquire_global_test_lock(lock_path: Path) -> TextIO:
    """Acquire an exclusive lock on the given path, returning the open file handle.

    Blocks until the lock is available, printing a message first if another process holds it.
    The caller must keep the returned handle open for as long as it wants to hold the lock.
    """
    lock_path.touch(exist_ok=True)
    lock_file_handle = lock_path.open("w")

    try:
        fcntl.flock(lock_file_handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        return lock_file_handle
    except BlockingIOError:
        pass

    print_lock_message(
        "PYTEST GLOBAL LOCK: Another pytest process is running.\n"
        "Waiting for it to complete before starting this test run...",
    )
    fcntl.flock(lock_file_handle.fileno(), fcntl.LOCK_EX)
    print_lock_message("PYTEST GLOBAL LOCK: Lock acquired, proceeding with tests.")
    return lock_file_handle


def get_max_duration_seconds() -> float:
    if "PYTEST_MAX_DURATION" in os.environ:
        return float(os.environ["PYTEST_MAX_DURATION"])
    if "CI" in os.environ:
        return _CI_MAX_DURATION_SECONDS
    return _LOCAL_MAX_DURATION_SECONDS


@pytest.hookimpl(tryfirst=True)
def pytest_sessionstart(session: pytest.Session) -> None:
    """Acquire the global test lock, then record the start time.

    The start time is taken after the lock so that time spent queueing is not counted
    against the suite time limit. xdist workers skip the lock since the controller holds it.
    """
    if not is_xdist_worker():
        lock_handle = acquire_global_test_lock(lock_path=_GLOBAL_TEST_LOCK_PATH)
        setattr(session, _SESSION_LOCK_HANDLE_ATTR, lock_handle)

    setattr(session, "start_time", time.time())


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Fail the run if the whole test session took longer than allowed."""
    if not hasattr(session, "start_time"):
        return

    duration = time.time() - session.start_time
    max_duration = get_max_duration_seconds()
    if duration > max_duration:
        pytest.exit(
            f"Test suite took {duration:.2f}s, exceeding the {max_duration}s limit",
            returncode=1,
        )
