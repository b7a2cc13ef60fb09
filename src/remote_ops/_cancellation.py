"""Cooperative cancellation shared by one batch of operations."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable

from remote_ops._errors import Cancelled

if TYPE_CHECKING:
    from collections.abc import Iterable

log = logging.getLogger(__name__)


class CancellationToken:
    """Read side of a cancellation signal.

    Tokens are handed to long-running calls, which poll :attr:`is_cancelled`
    (or call :meth:`throw_if_cancelled`) between steps.
    """

    NONE: CancellationToken

    def __init__(self, source: CancellationTokenSource | None = None) -> None:
        self._source = source

    @property
    def is_cancelled(self) -> bool:
        return self._source is not None and self._source.is_cancelled

    @property
    def can_be_cancelled(self) -> bool:
        return self._source is not None

    def throw_if_cancelled(self) -> None:
        """:raises Cancelled: If cancellation has been requested."""
        if self.is_cancelled:
            raise Cancelled()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation (immediately if already cancelled).

        :returns: A function that unregisters the callback.
        """
        if self._source is None:
            return lambda: None
        return self._source._register(callback)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; returns ``is_cancelled``."""
        if self._source is None:
            return False
        return self._source._event.wait(timeout)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


CancellationToken.NONE = CancellationToken()


class CancellationTokenSource:
    """Owner of a cancellation signal.

    :meth:`cancel` is idempotent: callbacks run once, on the first call.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._links: list[Callable[[], None]] = []
        self._token = CancellationToken(self)

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation and run the registered callbacks."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                log.exception("Cancellation callback failed")

    def _register(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister
        callback()
        return lambda: None

    @classmethod
    def linked(cls, tokens: Iterable[CancellationToken]) -> CancellationTokenSource:
        """A source that cancels when any of ``tokens`` does.

        Call :meth:`close` once the source is no longer needed so the parent
        tokens stop referencing it.
        """
        source = cls()
        source._links = [token.register(source.cancel) for token in tokens]
        return source

    def close(self) -> None:
        """Detach from the tokens this source was linked to."""
        links, self._links = self._links, []
        for unregister in links:
            unregister()

    @classmethod
    def cancelled(cls) -> CancellationTokenSource:
        source = cls()
        source.cancel()
        return source
