"""
Cooperative cancellation for RPCs.

A CancellationTokenSource owns the right to cancel; the CancellationToken it
hands out can only be observed. Tokens are bound to the event loop that
awaits them and are not thread-safe.

Every RPC issued inside a transaction is governed by an *effective* token:
the transaction's own token combined with the token passed to the call.
Composition allocates a LinkedTokenSource only when both sides can actually
be cancelled, and the linked source is always closed when the call ends.
"""

import asyncio
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, TypeVar

from docstore.errors import OperationCancelledError

T = TypeVar('T')


class CancellationRegistration:
    """Handle returned by CancellationToken.register; dispose() detaches the callback."""

    def __init__(self, source: Optional["CancellationTokenSource"] = None, key: int = 0):
        self._source = source
        self._key = key

    def dispose(self) -> None:
        if self._source is not None:
            self._source._unregister(self._key)
            self._source = None


class CancellationToken:
    """
    Observable side of a cancellation source.

    ``CancellationToken.NONE`` can never be cancelled.
    """

    NONE: "CancellationToken"

    def __init__(self, source: Optional["CancellationTokenSource"] = None):
        self._source = source

    @property
    def can_be_cancelled(self) -> bool:
        return self._source is not None

    @property
    def is_cancelled(self) -> bool:
        return self._source is not None and self._source.is_cancelled

    def register(self, callback: Callable[[], Any]) -> CancellationRegistration:
        """
        Register a callback to run when the token is cancelled.

        If the token is already cancelled the callback runs immediately.

        Args:
            callback: Zero-argument callable

        Returns:
            Registration handle
        """
        if self._source is None:
            return CancellationRegistration()
        return self._source._register(callback)

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise OperationCancelledError("Operation was cancelled")

    async def wait(self) -> None:
        """Wait until the token is cancelled (forever for an uncancellable token)."""
        waiter = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        registration = self.register(_wake)
        try:
            await waiter
        finally:
            registration.dispose()

    async def guard(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Start an operation and await it while watching the token.

        The operation is only started if the token has not fired yet, since
        building a gRPC call dispatches it. If the token fires while the
        operation is in flight, the call (when it has ``cancel()``) and the
        task awaiting it are cancelled and OperationCancelledError is raised.

        Args:
            operation: Zero-argument callable returning a coroutine, task
                or gRPC call

        Returns:
            Result of the operation
        """
        if not self.can_be_cancelled:
            return await operation()

        self.raise_if_cancelled()

        awaitable = operation()
        task = asyncio.ensure_future(awaitable)

        def _abort() -> None:
            cancel = getattr(awaitable, "cancel", None)
            if callable(cancel) and awaitable is not task:
                cancel()
            task.cancel()

        registration = self.register(_abort)
        try:
            return await task
        except asyncio.CancelledError:
            if self.is_cancelled:
                raise OperationCancelledError("Operation was cancelled") from None
            raise
        finally:
            registration.dispose()

    def __repr__(self) -> str:
        if self._source is None:
            return "CancellationToken.NONE"
        return f"CancellationToken(cancelled={self.is_cancelled})"


CancellationToken.NONE = CancellationToken()


class CancellationTokenSource:
    """
    Source of a cancellable token.

    Usable as a context manager; leaving the block closes the source, which
    stops any pending ``cancel_after`` timer.
    """

    def __init__(self):
        self._cancelled = False
        self._closed = False
        self._callbacks: Dict[int, Callable[[], Any]] = {}
        self._next_key = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self.token = CancellationToken(self)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._closed

    def cancel(self) -> None:
        """Cancel the token and run registered callbacks once."""
        if self._cancelled:
            return

        self._cancelled = True
        self._cancel_timer()

        callbacks = list(self._callbacks.values())
        self._callbacks.clear()
        for callback in callbacks:
            callback()

    def cancel_after(self, delay_s: float) -> None:
        """
        Schedule cancellation after a delay. This is how deadlines are expressed.

        Args:
            delay_s: Delay in seconds
        """
        if self._cancelled:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(delay_s, self.cancel)

    def close(self) -> None:
        self._cancel_timer()
        self._closed = True

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _register(self, callback: Callable[[], Any]) -> CancellationRegistration:
        if self._cancelled:
            callback()
            return CancellationRegistration()

        key = self._next_key
        self._next_key += 1
        self._callbacks[key] = callback
        return CancellationRegistration(self, key)

    def _unregister(self, key: int) -> None:
        self._callbacks.pop(key, None)

    def __enter__(self) -> "CancellationTokenSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LinkedTokenSource(CancellationTokenSource):
    """
    Source cancelled as soon as any of its parent tokens is cancelled.

    Closing detaches it from the parents exactly once.
    """

    def __init__(self, *tokens: CancellationToken):
        super().__init__()
        self._registrations: List[CancellationRegistration] = []
        for token in tokens:
            if token.can_be_cancelled:
                self._registrations.append(token.register(self.cancel))

    def close(self) -> None:
        if self._closed:
            return
        for registration in self._registrations:
            registration.dispose()
        self._registrations = []
        super().close()


@contextmanager
def effective_token(
    transaction_token: CancellationToken,
    call_token: Optional[CancellationToken] = None,
) -> Iterator[CancellationToken]:
    """
    Combine a transaction-scoped token with a per-call token.

    Args:
        transaction_token: Token the transaction was begun with
        call_token: Token supplied to the individual call (None means NONE)

    Yields:
        Token that fires when either input fires
    """
    if call_token is None:
        call_token = CancellationToken.NONE

    if not transaction_token.can_be_cancelled:
        yield call_token
    elif not call_token.can_be_cancelled:
        yield transaction_token
    else:
        with LinkedTokenSource(transaction_token, call_token) as linked:
            yield linked.token
