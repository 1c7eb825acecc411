"""Cooperative cancellation for long-running builds."""

from __future__ import annotations

import threading

from ctxgraph.exceptions import BuildCancelledError


class CancelToken:
    """A thread-safe flag checked between build phases.

    Usage:
        token = CancelToken()
        # from another thread: token.cancel()
        token.raise_if_cancelled("embed")
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, phase: str) -> None:
        if self._event.is_set():
            raise BuildCancelledError(phase)

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout)
