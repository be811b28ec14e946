# context.py
# Cancellation and deadline signal for one run.
#
# The caller owns the RunContext and may cancel it from any thread. The
# executor, the model client and every tool consult the same object, so a
# cancelled run stops at the next blocking point instead of hanging.

import threading
import time


class RunCancelledError(Exception):
    """Raised when a run's context was cancelled or its deadline passed."""


class RunContext:
    """
    Thread-safe cancellation token with an optional deadline.

    Example:
        ctx = RunContext(timeout=30)
        result = executor.run(task, skill, tools, context=ctx)
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self) -> None:
        if self.cancelled:
            raise RunCancelledError("Run was cancelled.")

