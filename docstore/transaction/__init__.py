"""
Optimistic transactions.

Reads before writes, writes committed atomically under a server-issued
transaction id, conflicts retried by the runner with chained sessions.
"""

from docstore.transaction.runner import TransactionOptions, TransactionRunner
from docstore.transaction.state import TransactionState
from docstore.transaction.transaction import READ_AFTER_WRITE_MESSAGE, Transaction

__all__ = [
    # State Management
    "TransactionState",
    # Transaction
    "Transaction",
    "READ_AFTER_WRITE_MESSAGE",
    # Runner
    "TransactionRunner",
    "TransactionOptions",
]
