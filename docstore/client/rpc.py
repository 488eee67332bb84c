"""
Document service RPC messages.

Implements BeginTransaction, Commit, Rollback, BatchGetDocuments and RunQuery.
Transaction ids are opaque bytes issued by the server.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ReadWrite:
    """
    Read-write transaction mode.

    Attributes:
        retry_transaction: Id of a failed attempt this transaction retries
    """
    retry_transaction: Optional[bytes] = None


@dataclass
class TransactionOptions:
    """Options for BeginTransaction; None on the request means a plain read-write transaction."""
    read_write: Optional[ReadWrite] = None


@dataclass
class BeginTransactionRequest:
    """
    BeginTransaction RPC request.

    Attributes:
        database: Database root path (projects/<p>/databases/<d>)
        options: Transaction options (None for a fresh read-write transaction)
    """
    database: str
    options: Optional[TransactionOptions] = None


@dataclass
class BeginTransactionResponse:
    transaction: bytes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BeginTransactionResponse":
        return cls(transaction=data["transaction"])


@dataclass
class Precondition:
    """
    Wire form of a write precondition. At most one field is set.

    Attributes:
        exists: Document must (True) or must not (False) exist
        update_time: Document must have been last updated at this time
    """
    exists: Optional[bool] = None
    update_time: Optional[str] = None


@dataclass
class Write:
    """
    A single mutation in a commit.

    Exactly one of ``update`` / ``delete`` is set. ``update`` carries the full
    document name and the field values to write.

    Attributes:
        update: Document to write ({"name": ..., "fields": {...}})
        delete: Full name of the document to delete
        update_mask: Field paths to write; None overwrites the whole document
        current_document: Precondition checked by the server at commit
    """
    update: Optional[Dict[str, Any]] = None
    delete: Optional[str] = None
    update_mask: Optional[List[str]] = None
    current_document: Optional[Precondition] = None


@dataclass
class CommitRequest:
    """
    Commit RPC request.

    Attributes:
        database: Database root path
        writes: Writes applied atomically
        transaction: Transaction id (None for a non-transactional batch)
    """
    database: str
    writes: List[Write] = field(default_factory=list)
    transaction: Optional[bytes] = None


@dataclass
class WriteResult:
    update_time: Optional[str] = None


@dataclass
class CommitResponse:
    """
    Commit RPC response.

    Attributes:
        write_results: One result per write, in request order
        commit_time: Server time the commit became durable
    """
    write_results: List[WriteResult] = field(default_factory=list)
    commit_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitResponse":
        return cls(
            write_results=[
                WriteResult(update_time=result.get("update_time"))
                for result in data.get("write_results", [])
            ],
            commit_time=data.get("commit_time"),
        )


@dataclass
class RollbackRequest:
    database: str
    transaction: bytes


@dataclass
class Document:
    """
    A stored document.

    Attributes:
        name: Full document name
        fields: Document data
        create_time: Creation time
        update_time: Last update time
    """
    name: str
    fields: Dict[str, Any] = field(default_factory=dict)
    create_time: Optional[str] = None
    update_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            name=data["name"],
            fields=data.get("fields") or {},
            create_time=data.get("create_time"),
            update_time=data.get("update_time"),
        )


@dataclass
class BatchGetDocumentsRequest:
    """
    BatchGetDocuments RPC request.

    Attributes:
        database: Database root path
        documents: Full names of the documents to read
        transaction: Read within this transaction (None for a plain read)
    """
    database: str
    documents: List[str]
    transaction: Optional[bytes] = None


@dataclass
class BatchGetDocumentsResponse:
    """
    BatchGetDocuments RPC response.

    Attributes:
        found: Documents that exist
        missing: Names of requested documents that do not exist
        read_time: Time the documents were read at
    """
    found: List[Document] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    read_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchGetDocumentsResponse":
        return cls(
            found=[Document.from_dict(doc) for doc in data.get("found", [])],
            missing=list(data.get("missing", [])),
            read_time=data.get("read_time"),
        )


@dataclass
class FieldFilter:
    field: str
    op: str
    value: Any


@dataclass
class Order:
    field: str
    direction: str = "ASCENDING"


@dataclass
class StructuredQuery:
    """
    Query over a single collection.

    Attributes:
        from_collection: Collection id
        where: Conjunction of field filters
        order_by: Sort orders, applied in sequence
        limit: Maximum number of results
    """
    from_collection: str
    where: List[FieldFilter] = field(default_factory=list)
    order_by: List[Order] = field(default_factory=list)
    limit: Optional[int] = None


@dataclass
class RunQueryRequest:
    """
    RunQuery RPC request.

    Attributes:
        parent: Full name of the parent document, or the documents root
        structured_query: Query to run
        transaction: Run within this transaction (None for a plain read)
    """
    parent: str
    structured_query: StructuredQuery
    transaction: Optional[bytes] = None


@dataclass
class RunQueryResponse:
    documents: List[Document] = field(default_factory=list)
    read_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunQueryResponse":
        return cls(
            documents=[Document.from_dict(doc) for doc in data.get("documents", [])],
            read_time=data.get("read_time"),
        )
