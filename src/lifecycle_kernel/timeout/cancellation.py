from __future__ import annotations

import threading
import time
import weakref
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from lifecycle_kernel.kernel.errors import KernelError


class InvocationCancelledError(KernelError):
    # Raised at a cooperative checkpoint once the current call's token was cancelled.
    pass


class CancellationToken:
    # Call-local cancellation flag; cancelling a token cancels every token linked to it.
    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._children: weakref.WeakSet[CancellationToken] = weakref.WeakSet()
        if parent is not None:
            parent._link(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel(reason)

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise InvocationCancelledError(self._reason or "Invocation was cancelled")

    def _link(self, child: CancellationToken) -> None:
        with self._lock:
            self._children.add(child)
            already_cancelled = self._event.is_set()
        if already_cancelled:
            child.cancel(self._reason)


_CURRENT: ContextVar[CancellationToken | None] = ContextVar("lifecycle_kernel_cancellation", default=None)


def current_token() -> CancellationToken | None:
    return _CURRENT.get()


def is_cancelled() -> bool:
    token = _CURRENT.get()
    return token is not None and token.cancelled


@contextmanager
def bind_token(token: CancellationToken) -> Iterator[CancellationToken]:
    # Installs the token for the current context and always restores the caller's token.
    reset = _CURRENT.set(token)
    try:
        yield token
    finally:
        _CURRENT.reset(reset)


def checkpoint() -> None:
    token = _CURRENT.get()
    if token is not None:
        token.raise_if_cancelled()


def sleep(seconds: float) -> None:
    # Cancellable sleep; wakes up as soon as the current token is cancelled.
    token = _CURRENT.get()
    if token is None:
        time.sleep(seconds)
        return
    token.raise_if_cancelled()
    if token.wait(max(seconds, 0.0)):
        token.raise_if_cancelled()
