"""
Exception hierarchy for docstore.

Transport failures are never wrapped: they surface as ``grpc.RpcError``
exactly as the channel raised them.
"""

import grpc


class DocstoreError(Exception):
    """Base class for errors raised by docstore itself."""
    pass


class PreconditionViolationError(DocstoreError):
    """A call was made that can never succeed; a caller bug, never retried."""
    pass


class InvalidArgumentError(PreconditionViolationError, ValueError):
    """An argument was missing or malformed."""
    pass


class InvalidStateError(PreconditionViolationError, RuntimeError):
    """The object is not in a state that permits the call."""
    pass


class OperationCancelledError(DocstoreError):
    """The effective cancellation token fired before the operation finished."""
    pass


class TransactionConflictError(DocstoreError):
    """
    Commit was rejected because the transaction's reads were invalidated
    by a concurrent write.

    Attributes:
        transaction_id: Id of the attempt that lost the conflict
    """

    def __init__(self, transaction_id: bytes, message: str = "Transaction conflict"):
        super().__init__(message)
        self.transaction_id = transaction_id


def is_conflict(error: BaseException) -> bool:
    """
    Check whether an RPC error reports a transaction conflict.

    Args:
        error: Exception raised by an RPC

    Returns:
        True if the server aborted the transaction due to contention
    """
    if not isinstance(error, grpc.RpcError):
        return False
    code = getattr(error, "code", None)
    return callable(code) and code() == grpc.StatusCode.ABORTED

