"""
Collection references, queries and query snapshots.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Tuple

from docstore.cancellation import CancellationToken
from docstore.client.rpc import FieldFilter, Order, RunQueryRequest, StructuredQuery
from docstore.document import DocumentReference, DocumentSnapshot, FieldPath
from docstore.errors import InvalidArgumentError

if TYPE_CHECKING:
    from docstore.database import Database

OPERATORS = frozenset({"<", "<=", "==", "!=", ">", ">=", "array-contains", "in"})

ASCENDING = "ASCENDING"
DESCENDING = "DESCENDING"


class Query:
    """
    Immutable query over one collection.

    Builder methods return a new Query; the receiver is never modified.
    """

    def __init__(
        self,
        database: "Database",
        collection_path: str,
        filters: Tuple[FieldFilter, ...] = (),
        orders: Tuple[Order, ...] = (),
        limit: Optional[int] = None,
    ):
        segments = [s for s in collection_path.split("/") if s]
        if not segments or len(segments) % 2 != 1:
            raise InvalidArgumentError(f"Invalid collection path: {collection_path!r}")

        self.database = database
        self.collection_path = "/".join(segments)
        self._filters = filters
        self._orders = orders
        self._limit = limit

    @property
    def collection_id(self) -> str:
        return self.collection_path.rsplit("/", 1)[-1]

    @property
    def parent_path(self) -> str:
        """Full name of the parent document, or the documents root."""
        if "/" not in self.collection_path:
            return self.database.documents_path
        parent = self.collection_path.rsplit("/", 1)[0]
        return f"{self.database.documents_path}/{parent}"

    def _copy(self, **changes: Any) -> "Query":
        return Query(
            self.database,
            self.collection_path,
            filters=changes.get("filters", self._filters),
            orders=changes.get("orders", self._orders),
            limit=changes.get("limit", self._limit),
        )

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        """
        Add a field filter.

        Args:
            field_path: Dotted field path
            op: Comparison operator
            value: Value to compare against

        Returns:
            New query
        """
        if op not in OPERATORS:
            raise InvalidArgumentError(f"Unsupported operator: {op!r}")
        path = FieldPath.of(field_path).to_dotted()
        return self._copy(filters=self._filters + (FieldFilter(path, op, value),))

    def order_by(self, field_path: str, direction: str = ASCENDING) -> "Query":
        if direction not in (ASCENDING, DESCENDING):
            raise InvalidArgumentError(f"Invalid direction: {direction!r}")
        path = FieldPath.of(field_path).to_dotted()
        return self._copy(orders=self._orders + (Order(path, direction),))

    def limit(self, count: int) -> "Query":
        if count < 0:
            raise InvalidArgumentError("Limit must be non-negative")
        return self._copy(limit=count)

    def to_structured_query(self) -> StructuredQuery:
        return StructuredQuery(
            from_collection=self.collection_id,
            where=list(self._filters),
            order_by=list(self._orders),
            limit=self._limit,
        )

    async def snapshot(
        self,
        transaction_id: Optional[bytes] = None,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> "QuerySnapshot":
        """
        Run the query.

        Args:
            transaction_id: Run within this transaction (None for a plain read)
            cancellation: Token governing the read

        Returns:
            Snapshot of the matching documents
        """
        request = RunQueryRequest(
            parent=self.parent_path,
            structured_query=self.to_structured_query(),
            transaction=transaction_id,
        )
        response = await self.database.client.run_query(request, cancellation)

        prefix = self.database.documents_path + "/"
        documents = [
            DocumentSnapshot.from_document(
                self.database.document(document.name[len(prefix):]),
                document,
                response.read_time,
            )
            for document in response.documents
        ]
        return QuerySnapshot(query=self, documents=documents, read_time=response.read_time)

    def __repr__(self):
        return f"Query({self.collection_path!r}, filters={len(self._filters)})"


class CollectionReference(Query):
    """Reference to a collection; also the unfiltered query over it."""

    def __init__(self, database: "Database", path: str):
        super().__init__(database, path)

    @property
    def id(self) -> str:
        return self.collection_id

    def document(self, document_id: str) -> DocumentReference:
        return DocumentReference(self.database, f"{self.collection_path}/{document_id}")

    def __repr__(self):
        return f"CollectionReference({self.collection_path!r})"


@dataclass
class QuerySnapshot:
    """
    Results of a query as of ``read_time``.

    Attributes:
        query: Query that was run
        documents: Matching documents, in result order
        read_time: Time of the read
    """
    query: Query
    documents: List[DocumentSnapshot] = field(default_factory=list)
    read_time: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.documents

    def __len__(self) -> int:
        return len(self.documents)

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self.documents)
