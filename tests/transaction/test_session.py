"""
Tests for beginning transactions, fresh and chained.
"""

import grpc
import pytest

from docstore.cancellation import CancellationTokenSource
from docstore.transaction import Transaction, TransactionState


class TestBegin:
    """Test Transaction.begin."""

    @pytest.mark.asyncio
    async def test_fresh_begin(self, database, client):
        """A first attempt requests a plain read-write transaction."""
        transaction = await Transaction.begin(database)

        request = client.calls("begin_transaction")[0]
        assert request.database == database.root_path
        assert request.options is None
        assert transaction.transaction_id == b"txn-1"
        assert transaction.previous_transaction_id is None
        assert transaction.state == TransactionState.OPEN
        assert transaction.write_count == 0

    @pytest.mark.asyncio
    async def test_chained_begin(self, database, client):
        """A retry carries the previous id as the retry hint."""
        first = await Transaction.begin(database)

        second = await Transaction.begin(database, first.transaction_id)

        fresh, chained = client.calls("begin_transaction")
        assert fresh.options is None
        assert chained.options.read_write.retry_transaction == first.transaction_id
        assert chained != fresh
        assert second.transaction_id != first.transaction_id
        assert second.previous_transaction_id == first.transaction_id

    @pytest.mark.asyncio
    async def test_begin_keeps_cancellation_token(self, database, client):
        """The begin call and the transaction share the supplied token."""
        source = CancellationTokenSource()

        transaction = await Transaction.begin(database, None, source.token)

        assert client.tokens("begin_transaction") == [source.token]
        assert transaction.cancellation is source.token

    @pytest.mark.asyncio
    async def test_begin_error_propagates(self, database, client, rpc_error):
        """Transport errors from begin propagate unchanged and are not retried."""
        error = rpc_error(grpc.StatusCode.UNAVAILABLE)
        client.begin_error = error

        with pytest.raises(grpc.RpcError) as exc_info:
            await Transaction.begin(database)

        assert exc_info.value is error
        assert len(client.calls("begin_transaction")) == 1
