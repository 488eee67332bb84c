"""
Database handle.

Entry point for references, write batches and transactions.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from docstore.cancellation import CancellationToken
from docstore.client.grpc_client import DocumentServiceClient
from docstore.document import DocumentReference
from docstore.query import CollectionReference
from docstore.transaction.runner import TransactionOptions, TransactionRunner
from docstore.transaction.transaction import Transaction
from docstore.utils.config import Config
from docstore.utils.logging import get_logger
from docstore.write_batch import WriteBatch

logger = get_logger(__name__)

T = TypeVar('T')

DEFAULT_DATABASE_ID = "(default)"


class Database:
    """
    Handle to one database of a project.

    Attributes:
        project_id: Project id
        database_id: Database id
        client: RPC client used for every call
    """

    def __init__(
        self,
        project_id: str,
        database_id: str = DEFAULT_DATABASE_ID,
        client: Optional[DocumentServiceClient] = None,
    ):
        """
        Initialize database handle.

        Args:
            project_id: Project id
            database_id: Database id
            client: RPC client (connects to localhost:8080 if None)
        """
        if not project_id:
            raise ValueError("project_id must not be empty")

        self.project_id = project_id
        self.database_id = database_id
        self.client = client or DocumentServiceClient("localhost:8080")

        logger.info(
            "Database initialized",
            root_path=self.root_path,
        )

    @classmethod
    def from_config(cls, config: Config) -> "Database":
        """
        Create a database handle and its client from configuration.

        Args:
            config: Configuration

        Returns:
            Database handle
        """
        return cls(
            project_id=config.get("database.project_id"),
            database_id=config.get("database.database_id", DEFAULT_DATABASE_ID),
            client=DocumentServiceClient.from_config(config),
        )

    @property
    def root_path(self) -> str:
        return f"projects/{self.project_id}/databases/{self.database_id}"

    @property
    def documents_path(self) -> str:
        return f"{self.root_path}/documents"

    def document(self, path: str) -> DocumentReference:
        return DocumentReference(self, path)

    def collection(self, path: str) -> CollectionReference:
        return CollectionReference(self, path)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def run_transaction(
        self,
        callback: Callable[[Transaction], Awaitable[T]],
        options: Optional[TransactionOptions] = None,
        cancellation: CancellationToken = CancellationToken.NONE,
    ) -> T:
        """
        Run a callback in a transaction, retrying on commit conflicts.

        Args:
            callback: Async callable receiving the Transaction
            options: Retry options (defaults when None)
            cancellation: Token for the whole run

        Returns:
            Result of the callback
        """
        runner = TransactionRunner(self, options)
        return await runner.run(callback, cancellation)

    async def close(self) -> None:
        """Close the underlying client."""
        await self.client.close()

    def __repr__(self):
        return f"Database({self.root_path!r})"
