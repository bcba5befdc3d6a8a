import threading
from typing import Final
from typing import Self

from loguru import logger

# Extra time allowed on top of a wait's theoretical upper bound for scheduler and GIL jitter
SCHEDULER_SLACK_SECONDS: Final[float] = 0.05


class BackgroundCounter:
    """Increments a counter from a daemon thread every `period` seconds.

    Stands in for the asynchronous operation a test waits on. Use as a context manager so
    the thread is always stopped:

        with BackgroundCounter(period=0.01) as counter:
            wait(lambda: counter.value >= 3, timeout=0.1)
    """

    def __init__(self, period: float) -> None:
        self.period = period
        self._value = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def start(self) -> None:
        self._thread = threading.Thread(target=self._run, name="background-counter", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
        logger.trace("Background counter stopped at {}", self.value)

    def _run(self) -> None:
        # Event.wait returns True once stop() is called
        while not self._stop_event.wait(timeout=self.period):
            with self._lock:
                self._value += 1

    def __enter__(self) -> Self:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
