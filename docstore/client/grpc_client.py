"""
Document service gRPC client.

Issues the transactional RPCs (begin/commit/rollback) and the transactional
reads over a single grpc.aio channel. Errors from the channel are never
wrapped; cancellation through a token surfaces as OperationCancelledError.
"""

from typing import Optional

import grpc

from docstore.cancellation import CancellationToken
from docstore.client import codec
from docstore.client.rpc import (
    BatchGetDocumentsRequest,
    BatchGetDocumentsResponse,
    BeginTransactionRequest,
    BeginTransactionResponse,
    CommitRequest,
    CommitResponse,
    RollbackRequest,
    RunQueryRequest,
    RunQueryResponse,
)
from docstore.utils.config import Config
from docstore.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "docstore.v1.Docstore"


class DocumentServiceClient:
    """
    Client for the document service.

    Manages one gRPC channel with:
    - Keepalive and message size options
    - A default per-request timeout
    - Token-driven cancellation of in-flight calls
    """

    def __init__(
        self,
        target: str,
        request_timeout_ms: int = 60000,
        max_message_length: int = 100 * 1024 * 1024,
        keepalive_time_ms: int = 10000,
        keepalive_timeout_ms: int = 5000,
        channel: Optional[grpc.aio.Channel] = None,
    ):
        """
        Initialize document service client.

        Args:
            target: Server address (host:port)
            request_timeout_ms: Default request timeout
            max_message_length: Max send/receive message size in bytes
            keepalive_time_ms: Keepalive ping interval
            keepalive_timeout_ms: Keepalive ping timeout
            channel: Pre-built channel (created from target if None)
        """
        self.target = target
        self._timeout_ms = request_timeout_ms

        self._channel = channel or grpc.aio.insecure_channel(
            target,
            options=[
                ("grpc.max_send_message_length", max_message_length),
                ("grpc.max_receive_message_length", max_message_length),
                ("grpc.keepalive_time_ms", keepalive_time_ms),
                ("grpc.keepalive_timeout_ms", keepalive_timeout_ms),
                ("grpc.http2.max_pings_without_data", 0),
                ("grpc.initial_reconnect_backoff_ms", 1000),
                ("grpc.max_reconnect_backoff_ms", 10000),
            ],
        )

        self._begin_transaction = self._method("BeginTransaction", BeginTransactionResponse)
        self._commit = self._method("Commit", CommitResponse)
        self._rollback = self._method("Rollback", None)
        self._batch_get_documents = self._method("BatchGetDocuments", BatchGetDocumentsResponse)
        self._run_query = self._method("RunQuery", RunQueryResponse)

        logger.info(
            "DocumentServiceClient initialized",
            target=target,
            timeout_ms=request_timeout_ms,
        )

    @classmethod
    def from_config(cls, config: Config) -> "DocumentServiceClient":
        """
        Create a client from configuration.

        Args:
            config: Configuration (uses the "client" section)

        Returns:
            Document service client
        """
        settings = config.section("client")
        return cls(
            target=settings.get("target", "localhost:8080"),
            request_timeout_ms=settings.get("request_timeout_ms", 60000),
            max_message_length=settings.get("max_message_length", 100 * 1024 * 1024),
            keepalive_time_ms=settings.get("keepalive_time_ms", 10000),
            keepalive_timeout_ms=settings.get("keepalive_timeout_ms", 5000),
        )

    def _method(self, name: str, response_type):
        return self._channel.unary_unary(
            f"/{SERVICE_NAME}/{name}",
            request_serializer=codec.serialize,
            response_deserializer=codec.deserializer(response_type),
        )

    def get_timeout(self) -> float:
        """Get request timeout in seconds."""
        return self._timeout_ms / 1000.0

    async def begin_transaction(
        self,
        request: BeginTransactionRequest,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> BeginTransactionResponse:
        """
        Begin a server-side transaction.

        Args:
            request: BeginTransaction request
            cancellation: Token governing the call

        Returns:
            Response carrying the new transaction id
        """
        logger.debug("BeginTransaction", database=request.database)
        return await cancellation.guard(
            lambda: self._begin_transaction(request, timeout=self.get_timeout())
        )

    async def commit(
        self,
        request: CommitRequest,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> CommitResponse:
        """
        Atomically apply writes, optionally within a transaction.

        Args:
            request: Commit request
            cancellation: Token governing the call

        Returns:
            Commit response
        """
        logger.debug(
            "Commit",
            database=request.database,
            writes=len(request.writes),
            transaction_id=request.transaction,
        )
        return await cancellation.guard(
            lambda: self._commit(request, timeout=self.get_timeout())
        )

    async def rollback(
        self,
        request: RollbackRequest,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> None:
        """
        Roll back a transaction.

        Args:
            request: Rollback request
            cancellation: Token governing the call
        """
        logger.debug("Rollback", transaction_id=request.transaction)
        await cancellation.guard(
            lambda: self._rollback(request, timeout=self.get_timeout())
        )

    async def batch_get_documents(
        self,
        request: BatchGetDocumentsRequest,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> BatchGetDocumentsResponse:
        """
        Read documents by name.

        Args:
            request: BatchGetDocuments request
            cancellation: Token governing the call

        Returns:
            Found and missing documents
        """
        logger.debug(
            "BatchGetDocuments",
            documents=len(request.documents),
            transaction_id=request.transaction,
        )
        return await cancellation.guard(
            lambda: self._batch_get_documents(request, timeout=self.get_timeout())
        )

    async def run_query(
        self,
        request: RunQueryRequest,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> RunQueryResponse:
        """
        Run a structured query.

        Args:
            request: RunQuery request
            cancellation: Token governing the call

        Returns:
            Matching documents
        """
        logger.debug(
            "RunQuery",
            collection=request.structured_query.from_collection,
            transaction_id=request.transaction,
        )
        return await cancellation.guard(
            lambda: self._run_query(request, timeout=self.get_timeout())
        )

    async def close(self) -> None:
        """Close the channel."""
        await self._channel.close()

        logger.info("DocumentServiceClient closed", target=self.target)
