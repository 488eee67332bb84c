"""
Write batches.

Accumulates create/set/update/delete operations in order and submits them
as one atomic commit, optionally bound to a transaction.
"""

from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from docstore.cancellation import CancellationToken
from docstore.client import rpc
from docstore.document import DocumentReference, FieldPath
from docstore.errors import InvalidArgumentError
from docstore.utils.logging import get_logger

if TYPE_CHECKING:
    from docstore.database import Database

logger = get_logger(__name__)


class Precondition:
    """
    Condition a document must satisfy for a write to apply.

    Use ``Precondition.NONE``, ``Precondition.MUST_EXIST`` or
    ``Precondition.last_updated(update_time)``.
    """

    NONE: "Precondition"
    MUST_EXIST: "Precondition"

    def __init__(self, exists: Optional[bool] = None, update_time: Optional[str] = None):
        if exists is not None and update_time is not None:
            raise InvalidArgumentError("Precondition cannot specify both exists and update_time")
        self.exists = exists
        self.update_time = update_time

    @classmethod
    def last_updated(cls, update_time: str) -> "Precondition":
        return cls(update_time=update_time)

    @property
    def is_none(self) -> bool:
        return self.exists is None and self.update_time is None

    def to_wire(self) -> Optional[rpc.Precondition]:
        if self.is_none:
            return None
        return rpc.Precondition(exists=self.exists, update_time=self.update_time)

    def __eq__(self, other):
        if not isinstance(other, Precondition):
            return False
        return self.exists == other.exists and self.update_time == other.update_time

    def __hash__(self):
        return hash((self.exists, self.update_time))

    def __repr__(self):
        return f"Precondition(exists={self.exists}, update_time={self.update_time})"


Precondition.NONE = Precondition()
Precondition.MUST_EXIST = Precondition(exists=True)


class SetOptions:
    """
    How ``set`` treats fields that are not in the supplied data.

    ``OVERWRITE`` replaces the whole document, ``MERGE_ALL`` only writes the
    supplied leaf fields, ``merge_fields(...)`` only writes the named fields.
    """

    OVERWRITE: "SetOptions"
    MERGE_ALL: "SetOptions"

    def __init__(self, merge: bool = False, fields: Optional[Tuple[FieldPath, ...]] = None):
        self.merge = merge
        self.fields = fields

    @classmethod
    def merge_fields(cls, *paths: Union[str, FieldPath]) -> "SetOptions":
        if not paths:
            raise InvalidArgumentError("merge_fields requires at least one field path")
        return cls(merge=True, fields=tuple(FieldPath.of(p) for p in paths))

    def __repr__(self):
        return f"SetOptions(merge={self.merge}, fields={self.fields})"


SetOptions.OVERWRITE = SetOptions()
SetOptions.MERGE_ALL = SetOptions(merge=True)


def _leaf_paths(data: Mapping[str, Any], prefix: Tuple[str, ...] = ()) -> List[FieldPath]:
    paths = []
    for key, value in data.items():
        if isinstance(value, Mapping) and value:
            paths.extend(_leaf_paths(value, prefix + (key,)))
        else:
            paths.append(FieldPath(*(prefix + (key,))))
    return paths


def _expand(updates: Dict[FieldPath, Any]) -> Dict[str, Any]:
    """Turn {FieldPath("a", "b"): 1} into {"a": {"b": 1}}."""
    fields: Dict[str, Any] = {}
    for path, value in updates.items():
        node = fields
        for segment in path.segments[:-1]:
            node = node.setdefault(segment, {})
        node[path.segments[-1]] = value
    return fields


def _check_reference(reference: Any) -> DocumentReference:
    if reference is None:
        raise InvalidArgumentError("Document reference must not be None")
    if not isinstance(reference, DocumentReference):
        raise InvalidArgumentError(f"Expected DocumentReference, got {type(reference).__name__}")
    return reference


def _check_data(data: Any) -> Dict[str, Any]:
    if data is None:
        raise InvalidArgumentError("Document data must not be None")
    if not isinstance(data, Mapping):
        raise InvalidArgumentError(f"Document data must be a mapping, got {type(data).__name__}")
    return dict(data)


class WriteBatch:
    """
    Ordered batch of pending writes, committed atomically.

    All mutators only touch memory; the single network call is ``commit``.
    Mutators return the batch so calls can be chained.
    """

    def __init__(self, database: "Database"):
        """
        Initialize write batch.

        Args:
            database: Database the writes target
        """
        self.database = database
        self._writes: List[rpc.Write] = []

    @property
    def is_empty(self) -> bool:
        return not self._writes

    @property
    def writes(self) -> Tuple[rpc.Write, ...]:
        return tuple(self._writes)

    def __len__(self) -> int:
        return len(self._writes)

    def __iter__(self) -> Iterator[rpc.Write]:
        return iter(self._writes)

    def create(self, reference: DocumentReference, data: Mapping[str, Any]) -> "WriteBatch":
        """
        Add a create; the commit fails if the document already exists.

        Args:
            reference: Document to create
            data: Document data
        """
        reference = _check_reference(reference)
        fields = _check_data(data)

        self._writes.append(
            rpc.Write(
                update={"name": reference.full_path, "fields": fields},
                current_document=rpc.Precondition(exists=False),
            )
        )
        return self

    def set(
        self,
        reference: DocumentReference,
        data: Mapping[str, Any],
        options: Optional[SetOptions] = None,
    ) -> "WriteBatch":
        """
        Add a set, overwriting the document or merging into it.

        Args:
            reference: Document to write
            data: Document data
            options: SetOptions (None is equivalent to SetOptions.OVERWRITE)
        """
        reference = _check_reference(reference)
        fields = _check_data(data)
        options = options or SetOptions.OVERWRITE

        update_mask = None
        if options.merge:
            if options.fields is None:
                paths = _leaf_paths(fields)
            else:
                paths = list(options.fields)
            update_mask = [path.to_dotted() for path in paths]

        self._writes.append(
            rpc.Write(
                update={"name": reference.full_path, "fields": fields},
                update_mask=update_mask,
            )
        )
        return self

    def update(
        self,
        reference: DocumentReference,
        updates: Mapping[Union[str, FieldPath], Any],
        precondition: Optional[Precondition] = None,
    ) -> "WriteBatch":
        """
        Add an update of specific fields; fields not named are left untouched.

        Args:
            reference: Document to update
            updates: Values keyed by dotted path or FieldPath
            precondition: Precondition (None is equivalent to Precondition.MUST_EXIST)
        """
        reference = _check_reference(reference)
        if updates is None or not isinstance(updates, Mapping):
            raise InvalidArgumentError("Updates must be a mapping of field paths to values")
        if not updates:
            raise InvalidArgumentError("Updates must not be empty")

        paths: Dict[FieldPath, Any] = {}
        for key, value in updates.items():
            path = FieldPath.of(key)
            if path in paths:
                raise InvalidArgumentError(f"Duplicate field path: {path.to_dotted()}")
            paths[path] = value

        ordered = sorted(paths, key=lambda p: p.segments)
        for shorter, longer in zip(ordered, ordered[1:]):
            if shorter.is_prefix_of(longer):
                raise InvalidArgumentError(
                    f"Field path {shorter.to_dotted()} is a prefix of {longer.to_dotted()}"
                )

        precondition = precondition or Precondition.MUST_EXIST

        self._writes.append(
            rpc.Write(
                update={"name": reference.full_path, "fields": _expand(paths)},
                update_mask=[path.to_dotted() for path in ordered],
                current_document=precondition.to_wire(),
            )
        )
        return self

    def delete(
        self,
        reference: DocumentReference,
        precondition: Optional[Precondition] = None,
    ) -> "WriteBatch":
        """
        Add a delete.

        Args:
            reference: Document to delete
            precondition: Precondition (None means unconditional)
        """
        reference = _check_reference(reference)
        precondition = precondition or Precondition.NONE

        self._writes.append(
            rpc.Write(
                delete=reference.full_path,
                current_document=precondition.to_wire(),
            )
        )
        return self

    async def commit(
        self,
        transaction_id: Optional[bytes] = None,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> List[rpc.WriteResult]:
        """
        Submit all writes as one atomic commit.

        Args:
            transaction_id: Commit within this transaction (None for a plain batch)
            cancellation: Token governing the commit

        Returns:
            One write result per write, in order
        """
        request = rpc.CommitRequest(
            database=self.database.root_path,
            writes=list(self._writes),
            transaction=transaction_id,
        )
        response = await self.database.client.commit(request, cancellation)

        logger.debug(
            "Write batch committed",
            writes=len(self._writes),
            commit_time=response.commit_time,
        )

        return response.write_results
