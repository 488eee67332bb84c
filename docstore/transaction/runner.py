"""
Transaction runner.

Runs user transaction code, committing on success and rolling back on
failure. A commit conflict restarts the attempt with a new transaction
chained to the failed one, after exponential backoff, until the attempt
budget is spent.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from docstore.cancellation import CancellationToken
from docstore.errors import InvalidArgumentError, TransactionConflictError
from docstore.transaction.transaction import Transaction
from docstore.utils.config import Config
from docstore.utils.logging import get_logger

if TYPE_CHECKING:
    from docstore.database import Database

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass
class TransactionOptions:
    """
    Options for running a transaction with conflict retries.

    Attributes:
        max_attempts: Maximum number of attempts, including the first
        backoff_ms: Initial backoff in milliseconds
        backoff_max_ms: Maximum backoff in milliseconds
        jitter_ms: Random jitter to add to backoff
    """
    max_attempts: int = 5
    backoff_ms: int = 100
    backoff_max_ms: int = 5000
    jitter_ms: int = 20

    def __post_init__(self):
        if self.max_attempts < 1:
            raise InvalidArgumentError("max_attempts must be at least 1")

    @classmethod
    def from_config(cls, config: Config) -> "TransactionOptions":
        return cls(
            max_attempts=config.get("transactions.max_attempts", 5),
            backoff_ms=config.get("transactions.backoff_ms", 100),
            backoff_max_ms=config.get("transactions.backoff_max_ms", 5000),
            jitter_ms=config.get("transactions.jitter_ms", 20),
        )


class TransactionRunner:
    """
    Drives transaction attempts for one database.

    Each attempt:
    1. Begins a transaction (chained to the previous attempt on retry)
    2. Runs the callback with it
    3. Commits, or rolls back if the callback raised
    """

    def __init__(self, database: "Database", options: Optional[TransactionOptions] = None):
        """
        Initialize transaction runner.

        Args:
            database: Database to run transactions against
            options: Retry options
        """
        self.database = database
        self.options = options or TransactionOptions()

    async def run(
        self,
        callback: Callable[[Transaction], Awaitable[T]],
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> T:
        """
        Run a callback in a transaction, retrying on commit conflicts.

        Args:
            callback: Async callable receiving the Transaction
            cancellation: Token for every attempt, including backoff sleeps

        Returns:
            Result of the successful callback invocation

        Raises:
            TransactionConflictError: Every attempt hit a conflict
        """
        previous_transaction_id: Optional[bytes] = None
        last_conflict: Optional[TransactionConflictError] = None

        for attempt in range(1, self.options.max_attempts + 1):
            transaction = await Transaction.begin(
                self.database,
                previous_transaction_id,
                cancellation,
            )

            try:
                result = await callback(transaction)
            except (asyncio.CancelledError, Exception):
                await self._rollback_after_failure(transaction)
                raise

            try:
                await transaction.commit()
            except TransactionConflictError as e:
                last_conflict = e
                previous_transaction_id = transaction.transaction_id

                if attempt < self.options.max_attempts:
                    backoff_ms = self._calculate_backoff(attempt - 1)

                    logger.warning(
                        "Transaction conflict, retrying",
                        attempt=attempt,
                        backoff_ms=backoff_ms,
                        transaction_id=transaction.transaction_id,
                    )

                    await cancellation.guard(lambda: asyncio.sleep(backoff_ms / 1000.0))
                else:
                    logger.error(
                        "Transaction failed after all attempts",
                        attempts=attempt,
                        transaction_id=transaction.transaction_id,
                    )
                continue

            if attempt > 1:
                logger.info(
                    "Transaction succeeded after retry",
                    attempt=attempt,
                    transaction_id=transaction.transaction_id,
                )

            return result

        raise last_conflict

    async def _rollback_after_failure(self, transaction: Transaction) -> None:
        """Roll back after the callback raised or was cancelled; the callback's error wins."""
        try:
            await asyncio.shield(transaction.rollback())
        except Exception as e:
            logger.warning(
                "Rollback failed",
                transaction_id=transaction.transaction_id,
                error=str(e),
            )

    def _calculate_backoff(self, retry: int) -> int:
        """
        Calculate backoff delay with exponential growth and jitter.

        Formula: min(base * 2^retry, max) + jitter

        Args:
            retry: Retry number (0-indexed)

        Returns:
            Backoff delay in milliseconds
        """
        exponential_backoff = self.options.backoff_ms * (2 ** retry)

        backoff = min(exponential_backoff, self.options.backoff_max_ms)

        jitter = random.randint(0, self.options.jitter_ms)

        return backoff + jitter
