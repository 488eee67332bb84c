"""
Document references, snapshots and field paths.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

from docstore.cancellation import CancellationToken
from docstore.client.rpc import BatchGetDocumentsRequest, Document
from docstore.errors import InvalidArgumentError

if TYPE_CHECKING:
    from docstore.database import Database
    from docstore.query import CollectionReference


class FieldPath:
    """
    Path to a (possibly nested) field within a document.

    ``FieldPath("address", "city")`` and ``FieldPath.from_dotted("address.city")``
    are equivalent.
    """

    def __init__(self, *segments: str):
        if not segments:
            raise InvalidArgumentError("Field path must have at least one segment")
        for segment in segments:
            if not isinstance(segment, str) or not segment:
                raise InvalidArgumentError(f"Invalid field path segment: {segment!r}")
        self.segments: Tuple[str, ...] = tuple(segments)

    @classmethod
    def from_dotted(cls, path: str) -> "FieldPath":
        if not isinstance(path, str) or not path:
            raise InvalidArgumentError("Field path must be a non-empty string")
        return cls(*path.split("."))

    @classmethod
    def of(cls, path: Union[str, "FieldPath"]) -> "FieldPath":
        """Normalize a dotted string or FieldPath."""
        if isinstance(path, FieldPath):
            return path
        return cls.from_dotted(path)

    def to_dotted(self) -> str:
        return ".".join(self.segments)

    def is_prefix_of(self, other: "FieldPath") -> bool:
        return other.segments[:len(self.segments)] == self.segments

    def __hash__(self):
        return hash(self.segments)

    def __eq__(self, other):
        if not isinstance(other, FieldPath):
            return False
        return self.segments == other.segments

    def __repr__(self):
        return f"FieldPath({self.to_dotted()!r})"


class DocumentReference:
    """
    Reference to a document at ``collection/doc[/collection/doc...]``.

    Attributes:
        database: Owning database
        path: Path relative to the database's documents root
    """

    def __init__(self, database: "Database", path: str):
        segments = [s for s in path.split("/") if s] if isinstance(path, str) else []
        if not segments or len(segments) % 2 != 0:
            raise InvalidArgumentError(f"Invalid document path: {path!r}")

        self.database = database
        self.path = "/".join(segments)

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def full_path(self) -> str:
        return f"{self.database.documents_path}/{self.path}"

    @property
    def parent(self) -> "CollectionReference":
        return self.database.collection(self.path.rsplit("/", 1)[0])

    def collection(self, collection_id: str) -> "CollectionReference":
        return self.database.collection(f"{self.path}/{collection_id}")

    async def snapshot(
        self,
        transaction_id: Optional[bytes] = None,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> "DocumentSnapshot":
        """
        Fetch a snapshot of this document.

        Args:
            transaction_id: Read within this transaction (None for a plain read)
            cancellation: Token governing the read

        Returns:
            Snapshot of the document (``exists`` is False if it is missing)
        """
        request = BatchGetDocumentsRequest(
            database=self.database.root_path,
            documents=[self.full_path],
            transaction=transaction_id,
        )
        response = await self.database.client.batch_get_documents(request, cancellation)

        for document in response.found:
            if document.name == self.full_path:
                return DocumentSnapshot.from_document(self, document, response.read_time)

        return DocumentSnapshot.missing(self, response.read_time)

    def __hash__(self):
        return hash((self.database.root_path, self.path))

    def __eq__(self, other):
        if not isinstance(other, DocumentReference):
            return False
        return (
            self.database.root_path == other.database.root_path
            and self.path == other.path
        )

    def __repr__(self):
        return f"DocumentReference({self.path!r})"


@dataclass
class DocumentSnapshot:
    """
    A document as it existed at ``read_time``.

    Attributes:
        reference: Document that was read
        data: Document fields (None if the document does not exist)
        create_time: Creation time
        update_time: Last update time
        read_time: Time of the read
    """
    reference: DocumentReference
    data: Optional[Dict[str, Any]]
    create_time: Optional[str] = None
    update_time: Optional[str] = None
    read_time: Optional[str] = None

    @classmethod
    def from_document(
        cls,
        reference: DocumentReference,
        document: Document,
        read_time: Optional[str],
    ) -> "DocumentSnapshot":
        return cls(
            reference=reference,
            data=dict(document.fields),
            create_time=document.create_time,
            update_time=document.update_time,
            read_time=read_time,
        )

    @classmethod
    def missing(cls, reference: DocumentReference, read_time: Optional[str]) -> "DocumentSnapshot":
        return cls(reference=reference, data=None, read_time=read_time)

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return self.reference.id

    def get(self, field_path: Union[str, FieldPath], default: Any = None) -> Any:
        """
        Get a (possibly nested) field value.

        Args:
            field_path: Dotted path or FieldPath
            default: Value returned when the field or document is absent

        Returns:
            Field value
        """
        if self.data is None:
            return default

        value: Any = self.data
        for segment in FieldPath.of(field_path).segments:
            if not isinstance(value, dict) or segment not in value:
                return default
            value = value[segment]
        return value
