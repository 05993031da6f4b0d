"""Cancellation tokens for UI-facing continuations."""

from __future__ import annotations


class CancellationToken:
    """Signals that the caller of a pipeline operation has gone away.

    Cancelling only suppresses UI-visible callbacks; persistence and
    in-flight network calls always run to completion.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
