"""
Document service transport.

gRPC client and wire messages for the transactional RPCs.
"""

from docstore.client.grpc_client import DocumentServiceClient
from docstore.client.rpc import (
    BatchGetDocumentsRequest,
    BatchGetDocumentsResponse,
    BeginTransactionRequest,
    BeginTransactionResponse,
    CommitRequest,
    CommitResponse,
    Document,
    ReadWrite,
    RollbackRequest,
    RunQueryRequest,
    RunQueryResponse,
    StructuredQuery,
    TransactionOptions,
    Write,
    WriteResult,
)

__all__ = [
    # Client
    "DocumentServiceClient",
    # Transactions
    "BeginTransactionRequest",
    "BeginTransactionResponse",
    "TransactionOptions",
    "ReadWrite",
    "RollbackRequest",
    # Writes
    "CommitRequest",
    "CommitResponse",
    "Write",
    "WriteResult",
    # Reads
    "Document",
    "BatchGetDocumentsRequest",
    "BatchGetDocumentsResponse",
    "RunQueryRequest",
    "RunQueryResponse",
    "StructuredQuery",
]
