"""
docstore - client for a remote document database.

This package implements the client side of the database's optimistic
concurrency protocol:
- Document and query reads scoped to a server-issued transaction
- Buffered writes committed atomically
- Read-before-write enforcement inside a transaction
- Cooperative cancellation composed per call
- Conflict retries chained to the failed attempt
"""

__version__ = "0.1.0"

from docstore.cancellation import (
    CancellationToken,
    CancellationTokenSource,
    LinkedTokenSource,
    effective_token,
)
from docstore.database import Database
from docstore.document import DocumentReference, DocumentSnapshot, FieldPath
from docstore.errors import (
    DocstoreError,
    InvalidArgumentError,
    InvalidStateError,
    OperationCancelledError,
    PreconditionViolationError,
    TransactionConflictError,
)
from docstore.query import CollectionReference, Query, QuerySnapshot
from docstore.transaction import Transaction, TransactionOptions, TransactionRunner, TransactionState
from docstore.write_batch import Precondition, SetOptions, WriteBatch

__all__ = [
    # Database
    "Database",
    # Cancellation
    "CancellationToken",
    "CancellationTokenSource",
    "LinkedTokenSource",
    "effective_token",
    # Documents and queries
    "DocumentReference",
    "DocumentSnapshot",
    "FieldPath",
    "CollectionReference",
    "Query",
    "QuerySnapshot",
    # Writes
    "WriteBatch",
    "SetOptions",
    "Precondition",
    # Transactions
    "Transaction",
    "TransactionState",
    "TransactionRunner",
    "TransactionOptions",
    # Errors
    "DocstoreError",
    "PreconditionViolationError",
    "InvalidArgumentError",
    "InvalidStateError",
    "TransactionConflictError",
    "OperationCancelledError",
]
