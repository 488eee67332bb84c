"""
Tests for the transaction runner (conflict retries with chained sessions).
"""

import asyncio

import grpc
import pytest

from docstore.cancellation import CancellationTokenSource
from docstore.errors import InvalidArgumentError, OperationCancelledError, TransactionConflictError
from docstore.transaction import TransactionOptions, TransactionRunner, TransactionState
from docstore.utils.config import Config

NO_BACKOFF = TransactionOptions(max_attempts=3, backoff_ms=0, backoff_max_ms=0, jitter_ms=0)


class TestTransactionOptions:
    """Test TransactionOptions."""

    def test_rejects_zero_attempts(self):
        with pytest.raises(InvalidArgumentError):
            TransactionOptions(max_attempts=0)

    def test_from_config(self, tmp_path):
        """Values come from the transactions section."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("transactions:\n  max_attempts: 9\n  backoff_ms: 1\n")

        options = TransactionOptions.from_config(Config(str(config_file)))

        assert options.max_attempts == 9
        assert options.backoff_ms == 1


class TestTransactionRunner:
    """Test TransactionRunner."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, database, client):
        """The callback result is returned after one commit."""

        async def callback(transaction):
            snapshot = await transaction.get_document(database.document("docs/A"))
            transaction.set(database.document("docs/B"), {"x": 1})
            return snapshot.exists

        result = await TransactionRunner(database, NO_BACKOFF).run(callback)

        assert result is False
        assert len(client.calls("begin_transaction")) == 1
        assert len(client.calls("commit")) == 1
        assert client.calls("rollback") == []

    @pytest.mark.asyncio
    async def test_conflict_retries_with_chained_session(self, database, client, rpc_error):
        """After a conflict the next begin carries the failed id and user code reruns."""
        client.commit_errors.append(rpc_error(grpc.StatusCode.ABORTED))
        transactions = []

        async def callback(transaction):
            transactions.append(transaction)
            transaction.set(database.document("docs/A"), {"attempt": len(transactions)})
            return len(transactions)

        result = await TransactionRunner(database, NO_BACKOFF).run(callback)

        assert result == 2
        first, second = transactions
        assert first is not second
        assert first.state == TransactionState.FAILED
        assert second.state == TransactionState.COMMITTED
        assert second.transaction_id != first.transaction_id

        fresh, chained = client.calls("begin_transaction")
        assert fresh.options is None
        assert chained.options.read_write.retry_transaction == first.transaction_id

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, database, client, rpc_error):
        """When every attempt conflicts the last conflict propagates."""
        client.commit_errors.extend(rpc_error(grpc.StatusCode.ABORTED) for _ in range(3))

        async def callback(transaction):
            transaction.set(database.document("docs/A"), {"x": 1})

        with pytest.raises(TransactionConflictError) as exc_info:
            await TransactionRunner(database, NO_BACKOFF).run(callback)

        begins = client.calls("begin_transaction")
        assert len(begins) == 3
        assert exc_info.value.transaction_id == b"txn-3"
        assert begins[2].options.read_write.retry_transaction == b"txn-2"

    @pytest.mark.asyncio
    async def test_callback_error_rolls_back(self, database, client):
        """A failing callback triggers rollback and its error propagates."""

        async def callback(transaction):
            transaction.set(database.document("docs/A"), {"x": 1})
            raise KeyError("user bug")

        with pytest.raises(KeyError):
            await TransactionRunner(database, NO_BACKOFF).run(callback)

        assert len(client.calls("rollback")) == 1
        assert client.calls("commit") == []
        assert len(client.calls("begin_transaction")) == 1

    @pytest.mark.asyncio
    async def test_rollback_failure_keeps_callback_error(self, database, client, rpc_error):
        """The callback's error wins over a failed rollback."""
        client.rollback_error = rpc_error(grpc.StatusCode.UNAVAILABLE)

        async def callback(transaction):
            raise ValueError("user bug")

        with pytest.raises(ValueError, match="user bug"):
            await TransactionRunner(database, NO_BACKOFF).run(callback)

    @pytest.mark.asyncio
    async def test_non_conflict_commit_error_not_retried(self, database, client, rpc_error):
        """Permanent commit failures propagate without a retry."""
        client.commit_errors.append(rpc_error(grpc.StatusCode.PERMISSION_DENIED))

        async def callback(transaction):
            transaction.set(database.document("docs/A"), {"x": 1})

        with pytest.raises(grpc.RpcError):
            await TransactionRunner(database, NO_BACKOFF).run(callback)

        assert len(client.calls("begin_transaction")) == 1

    @pytest.mark.asyncio
    async def test_cancelled_during_backoff(self, database, client, rpc_error):
        """Cancelling while waiting to retry stops the run."""
        client.commit_errors.append(rpc_error(grpc.StatusCode.ABORTED))
        options = TransactionOptions(max_attempts=3, backoff_ms=10000, backoff_max_ms=10000, jitter_ms=0)
        source = CancellationTokenSource()

        async def callback(transaction):
            transaction.set(database.document("docs/A"), {"x": 1})

        task = asyncio.ensure_future(TransactionRunner(database, options).run(callback, source.token))
        while not client.calls("commit"):
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        source.cancel()

        with pytest.raises(OperationCancelledError):
            await task

        assert len(client.calls("begin_transaction")) == 1

    @pytest.mark.asyncio
    async def test_database_run_transaction(self, database, client):
        """Database.run_transaction delegates to the runner."""

        async def callback(transaction):
            transaction.create(database.document("docs/A"), {"x": 1})
            return "done"

        assert await database.run_transaction(callback, NO_BACKOFF) == "done"
        assert len(client.calls("commit")) == 1

    @pytest.mark.asyncio
    async def test_database_run_transaction_options_keyword(self, database, client, rpc_error):
        """The attempt budget passed as options= bounds the retries."""
        client.commit_errors.extend(rpc_error(grpc.StatusCode.ABORTED) for _ in range(2))

        async def callback(transaction):
            transaction.set(database.document("docs/A"), {"x": 1})

        with pytest.raises(TransactionConflictError):
            await database.run_transaction(
                callback,
                options=TransactionOptions(max_attempts=2, backoff_ms=0, backoff_max_ms=0, jitter_ms=0),
            )

        assert len(client.calls("begin_transaction")) == 2

    @pytest.mark.asyncio
    async def test_task_cancellation_rolls_back(self, database, client):
        """Cancelling the task running the callback still rolls the transaction back."""
        started = asyncio.Event()
        transactions = []

        async def callback(transaction):
            transactions.append(transaction)
            transaction.set(database.document("docs/A"), {"x": 1})
            started.set()
            await asyncio.Event().wait()

        task = asyncio.ensure_future(TransactionRunner(database, NO_BACKOFF).run(callback))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(client.calls("rollback")) == 1
        assert client.calls("commit") == []
        assert transactions[0].state == TransactionState.ROLLED_BACK

    def test_backoff_grows_and_caps(self, database):
        """Backoff doubles per retry and is capped."""
        runner = TransactionRunner(
            database,
            TransactionOptions(max_attempts=5, backoff_ms=100, backoff_max_ms=300, jitter_ms=0),
        )

        assert runner._calculate_backoff(0) == 100
        assert runner._calculate_backoff(1) == 200
        assert runner._calculate_backoff(2) == 300
