"""
Shared fixtures: a scripted in-memory document service client.
"""

import asyncio

import grpc
import pytest

from docstore.cancellation import CancellationToken
from docstore.client.rpc import (
    BatchGetDocumentsResponse,
    BeginTransactionResponse,
    CommitResponse,
    Document,
    RunQueryResponse,
    WriteResult,
)
from docstore.database import Database


def make_rpc_error(code: grpc.StatusCode, details: str = "") -> grpc.aio.AioRpcError:
    """Build the error a grpc.aio call raises for a status code."""
    return grpc.aio.AioRpcError(
        code,
        grpc.aio.Metadata(),
        grpc.aio.Metadata(),
        details=details or code.name,
    )


class FakeDocumentClient:
    """
    Records every request and answers from in-memory state.

    Attributes:
        requests: (method, request, cancellation) tuples in call order
        documents: Full document name -> fields, served by reads
        commit_errors: Exceptions raised by successive commit calls
        hang_reads: Reads wait until their token fires
    """

    def __init__(self):
        self.requests = []
        self.documents = {}
        self.commit_errors = []
        self.rollback_error = None
        self.begin_error = None
        self.hang_reads = False
        self.closed = False
        self._next_transaction = 0

    def calls(self, method):
        return [request for name, request, _ in self.requests if name == method]

    def tokens(self, method):
        return [token for name, _, token in self.requests if name == method]

    async def _hang(self):
        await asyncio.Event().wait()

    async def begin_transaction(self, request, cancellation=CancellationToken.NONE):
        self.requests.append(("begin_transaction", request, cancellation))
        if self.begin_error is not None:
            raise self.begin_error
        self._next_transaction += 1
        return BeginTransactionResponse(transaction=f"txn-{self._next_transaction}".encode())

    async def commit(self, request, cancellation=CancellationToken.NONE):
        self.requests.append(("commit", request, cancellation))
        if self.commit_errors:
            raise self.commit_errors.pop(0)
        return CommitResponse(
            write_results=[WriteResult(update_time="2024-01-01T00:00:00Z") for _ in request.writes],
            commit_time="2024-01-01T00:00:00Z",
        )

    async def rollback(self, request, cancellation=CancellationToken.NONE):
        self.requests.append(("rollback", request, cancellation))
        if self.rollback_error is not None:
            raise self.rollback_error

    async def batch_get_documents(self, request, cancellation=CancellationToken.NONE):
        self.requests.append(("batch_get_documents", request, cancellation))
        if self.hang_reads:
            await cancellation.guard(self._hang)
        found = [
            Document(name=name, fields=dict(self.documents[name]), update_time="2024-01-01T00:00:00Z")
            for name in request.documents
            if name in self.documents
        ]
        missing = [name for name in request.documents if name not in self.documents]
        return BatchGetDocumentsResponse(found=found, missing=missing, read_time="2024-01-01T00:00:01Z")

    async def run_query(self, request, cancellation=CancellationToken.NONE):
        self.requests.append(("run_query", request, cancellation))
        if self.hang_reads:
            await cancellation.guard(self._hang)
        prefix = f"{request.parent}/{request.structured_query.from_collection}/"
        documents = [
            Document(name=name, fields=dict(fields))
            for name, fields in sorted(self.documents.items())
            if name.startswith(prefix) and "/" not in name[len(prefix):]
        ]
        return RunQueryResponse(documents=documents, read_time="2024-01-01T00:00:01Z")

    async def close(self):
        self.closed = True


@pytest.fixture
def client():
    return FakeDocumentClient()


@pytest.fixture
def database(client):
    return Database("test-project", client=client)


@pytest.fixture
def rpc_error():
    return make_rpc_error
