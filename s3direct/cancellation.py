"""Cooperative cancellation.

The orchestrator and transport only observe a ``CancellationToken``; the
host owns the ``CancellationSource`` that signals it. Callbacks may fire
on whichever thread calls ``cancel()``.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from s3direct.errors import Canceled

Callback = Callable[[], None]


class CancellationToken(ABC):
    """Read-only view of a cancellation signal."""

    @abstractmethod
    def is_canceled(self) -> bool:
        """Return True once cancellation has been requested."""
        pass

    @abstractmethod
    def on_cancel(self, callback: Callback) -> Callable[[], None]:
        """Register a callback run once when cancellation is requested.

        If the token is already canceled the callback runs immediately.

        Returns:
            A function that unregisters the callback.
        """
        pass

    def raise_if_canceled(self) -> None:
        if self.is_canceled():
            raise Canceled()


class _NeverCanceled(CancellationToken):
    """Token used when the caller passes None."""

    def is_canceled(self) -> bool:
        return False

    def on_cancel(self, callback: Callback) -> Callable[[], None]:
        return lambda: None


NEVER_CANCELED: CancellationToken = _NeverCanceled()


def ensure_token(token: Optional[CancellationToken]) -> CancellationToken:
    return NEVER_CANCELED if token is None else token


class _SourceToken(CancellationToken):
    def __init__(self, source: "CancellationSource"):
        self._source = source

    def is_canceled(self) -> bool:
        return self._source.is_canceled()

    def on_cancel(self, callback: Callback) -> Callable[[], None]:
        return self._source._register(callback)


class CancellationSource:
    """Owner side of a cancellation signal.

    Example:
        >>> source = CancellationSource()
        >>> token = source.token
        >>> source.cancel()
        >>> token.is_canceled()
        True
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._canceled = False
        self._callbacks: list[Callback] = []
        self.token: CancellationToken = _SourceToken(self)

    def is_canceled(self) -> bool:
        return self._canceled

    def cancel(self) -> None:
        """Signal cancellation and run registered callbacks once."""
        with self._lock:
            if self._canceled:
                return
            self._canceled = True
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            callback()

    def _register(self, callback: Callback) -> Callable[[], None]:
        with self._lock:
            if not self._canceled:
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def _unregister(self, callback: Callback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
