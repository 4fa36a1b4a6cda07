"""
Cooperative cancellation for running task attempts.

A fresh token is created for every execution attempt. The scheduler sets it
when the user cancels; the execution gateway polls it between chunks. Nothing
is interrupted forcibly.
"""

import threading


class TaskCanceledError(Exception):
    """Raised by a gateway that stops early because its token was set."""


class CancellationToken:
    """Thread-safe stop flag shared by the scheduler and one gateway call."""

    def __init__(self):
        self._event = threading.Event()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    def raise_if_canceled(self):
        if self._event.is_set():
            raise TaskCanceledError("Task was canceled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds, waking early on cancel. Returns is_canceled."""
        return self._event.wait(timeout)
