"""
Client-side optimistic transactions.

A Transaction is handed to user code by the transaction runner. All reads
must be issued before any write is buffered; the buffered writes are then
committed atomically under the server-issued transaction id.

A Transaction is single-use: a retried attempt gets a new Transaction with
a new transaction id, chained to the failed one through ``begin``.
"""

import asyncio
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Union

from docstore.cancellation import CancellationToken, effective_token
from docstore.client.rpc import (
    BeginTransactionRequest,
    ReadWrite,
    RollbackRequest,
    TransactionOptions,
    WriteResult,
)
from docstore.document import DocumentReference, DocumentSnapshot, FieldPath
from docstore.errors import (
    InvalidArgumentError,
    InvalidStateError,
    TransactionConflictError,
    is_conflict,
)
from docstore.query import Query, QuerySnapshot
from docstore.transaction.state import TransactionState
from docstore.utils.logging import get_logger
from docstore.write_batch import Precondition, SetOptions, WriteBatch

if TYPE_CHECKING:
    from docstore.database import Database

logger = get_logger(__name__)

READ_AFTER_WRITE_MESSAGE = "Transactions require all reads to be executed before all writes."


class Transaction:
    """
    A single transaction attempt.

    Attributes:
        database: Database the transaction runs against
        previous_transaction_id: Id of the failed attempt this one retries (or None)
    """

    def __init__(
        self,
        database: "Database",
        transaction_id: bytes,
        cancellation: CancellationToken = CancellationToken.NONE,
        previous_transaction_id: Optional[bytes] = None,
    ):
        """
        Initialize transaction. Use ``Transaction.begin`` rather than calling this.

        Args:
            database: Database the transaction runs against
            transaction_id: Server-issued transaction id
            cancellation: Token for the whole attempt
            previous_transaction_id: Id this attempt was chained to
        """
        self.database = database
        self.previous_transaction_id = previous_transaction_id

        self._transaction_id = transaction_id
        self._cancellation = cancellation
        self._writes = WriteBatch(database)
        self._state = TransactionState.OPEN

    @classmethod
    async def begin(
        cls,
        database: "Database",
        previous_transaction_id: Optional[bytes] = None,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> "Transaction":
        """
        Begin a new transaction attempt.

        When ``previous_transaction_id`` is given the request asks for a
        read-write transaction that retries that attempt, so the server can
        favour it when resolving contention. Errors from the RPC propagate
        unchanged.

        Args:
            database: Database to begin the transaction in
            previous_transaction_id: Id of the attempt that hit a conflict
            cancellation: Token for the begin call and the whole attempt

        Returns:
            Open transaction with an empty write buffer
        """
        options = None
        if previous_transaction_id is not None:
            options = TransactionOptions(
                read_write=ReadWrite(retry_transaction=previous_transaction_id)
            )

        request = BeginTransactionRequest(database=database.root_path, options=options)
        response = await database.client.begin_transaction(request, cancellation)

        logger.info(
            "Transaction began",
            transaction_id=response.transaction,
            previous_transaction_id=previous_transaction_id,
        )

        return cls(
            database,
            response.transaction,
            cancellation,
            previous_transaction_id=previous_transaction_id,
        )

    @property
    def transaction_id(self) -> bytes:
        return self._transaction_id

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def write_count(self) -> int:
        return len(self._writes)

    def _transition(self, new_state: TransactionState) -> None:
        if not self._state.can_transition_to(new_state):
            raise InvalidStateError(
                f"Invalid transaction state transition: {self._state.value} → {new_state.value}"
            )
        self._state = new_state

    def _check_open(self, operation: str) -> None:
        if self._state is not TransactionState.OPEN:
            raise InvalidStateError(
                f"Cannot {operation} in a transaction that is {self._state.value}"
            )

    def _check_readable(self) -> None:
        self._check_open("read")
        if not self._writes.is_empty:
            raise InvalidStateError(READ_AFTER_WRITE_MESSAGE)

    async def get_document(
        self,
        reference: DocumentReference,
        cancellation: Optional[CancellationToken] = None,
    ) -> DocumentSnapshot:
        """
        Fetch a snapshot of a document within this transaction.

        Cannot be called once any write has been buffered.

        Args:
            reference: Document to fetch
            cancellation: Per-call token, combined with the transaction's token

        Returns:
            Snapshot of the document as seen by this transaction
        """
        if reference is None:
            raise InvalidArgumentError("Document reference must not be None")
        self._check_readable()

        logger.debug("Transactional document read", transaction_id=self._transaction_id, path=reference.path)

        with effective_token(self._cancellation, cancellation) as token:
            return await reference.snapshot(self._transaction_id, token)

    async def get_query(
        self,
        query: Query,
        cancellation: Optional[CancellationToken] = None,
    ) -> QuerySnapshot:
        """
        Run a query within this transaction.

        Cannot be called once any write has been buffered.

        Args:
            query: Query to run
            cancellation: Per-call token, combined with the transaction's token

        Returns:
            Snapshot of the results as seen by this transaction
        """
        if query is None:
            raise InvalidArgumentError("Query must not be None")
        self._check_readable()

        logger.debug("Transactional query", transaction_id=self._transaction_id, collection=query.collection_path)

        with effective_token(self._cancellation, cancellation) as token:
            return await query.snapshot(self._transaction_id, token)

    # Preconditions on the write arguments are validated by WriteBatch.

    def create(self, reference: DocumentReference, data: Mapping[str, Any]) -> None:
        """Buffer creation of a document; the commit fails if it already exists."""
        self._check_open("write")
        self._writes.create(reference, data)

    def set(
        self,
        reference: DocumentReference,
        data: Mapping[str, Any],
        options: Optional[SetOptions] = None,
    ) -> None:
        """Buffer a set; ``options`` None is equivalent to SetOptions.OVERWRITE."""
        self._check_open("write")
        self._writes.set(reference, data, options)

    def update(
        self,
        reference: DocumentReference,
        updates: Mapping[Union[str, FieldPath], Any],
        precondition: Optional[Precondition] = None,
    ) -> None:
        """Buffer a field update; ``precondition`` None is equivalent to Precondition.MUST_EXIST."""
        self._check_open("write")
        self._writes.update(reference, updates, precondition)

    def delete(
        self,
        reference: DocumentReference,
        precondition: Optional[Precondition] = None,
    ) -> None:
        """Buffer a delete; ``precondition`` None makes it unconditional."""
        self._check_open("write")
        self._writes.delete(reference, precondition)

    async def commit(self) -> List[WriteResult]:
        """
        Commit the buffered writes using the transaction's own token.

        A transaction without writes commits trivially, with no RPC.

        Returns:
            One write result per buffered write

        Raises:
            TransactionConflictError: The server aborted the commit due to contention
            OperationCancelledError: The transaction's token fired
        """
        self._transition(TransactionState.COMMITTING)

        if self._writes.is_empty:
            self._transition(TransactionState.COMMITTED)
            logger.debug("Read-only transaction committed", transaction_id=self._transaction_id)
            return []

        try:
            results = await self._writes.commit(self._transaction_id, self._cancellation)
        except asyncio.CancelledError:
            self._transition(TransactionState.FAILED)
            raise
        except Exception as e:
            self._transition(TransactionState.FAILED)
            if is_conflict(e):
                logger.warning(
                    "Transaction conflict",
                    transaction_id=self._transaction_id,
                    writes=len(self._writes),
                )
                raise TransactionConflictError(
                    self._transaction_id,
                    f"Transaction {self._transaction_id.hex()} aborted due to contention",
                ) from e
            raise

        self._transition(TransactionState.COMMITTED)

        logger.info(
            "Transaction committed",
            transaction_id=self._transaction_id,
            writes=len(results),
        )

        return results

    async def rollback(self) -> None:
        """Roll back the transaction using the transaction's own token."""
        self._transition(TransactionState.ROLLING_BACK)

        request = RollbackRequest(
            database=self.database.root_path,
            transaction=self._transaction_id,
        )

        try:
            await self.database.client.rollback(request, self._cancellation)
        except (asyncio.CancelledError, Exception):
            self._transition(TransactionState.FAILED)
            raise

        self._transition(TransactionState.ROLLED_BACK)

        logger.info("Transaction rolled back", transaction_id=self._transaction_id)

    def __repr__(self):
        return f"Transaction(id={self._transaction_id.hex()}, state={self._state.value})"
