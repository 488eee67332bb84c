"""
Tests for database handles, document references and queries.
"""

import pytest

from docstore.database import Database
from docstore.errors import InvalidArgumentError
from docstore.query import DESCENDING


class TestDatabase:
    """Test Database paths and lifecycle."""

    def test_root_path(self, database):
        assert database.root_path == "projects/test-project/databases/(default)"
        assert database.documents_path == "projects/test-project/databases/(default)/documents"

    def test_requires_project(self, client):
        with pytest.raises(ValueError):
            Database("", client=client)

    @pytest.mark.asyncio
    async def test_close(self, database, client):
        await database.close()

        assert client.closed


class TestReferences:
    """Test document and collection references."""

    def test_document_reference(self, database):
        reference = database.document("users/alice/orders/1")

        assert reference.id == "1"
        assert reference.parent.collection_path == "users/alice/orders"
        assert reference.full_path.endswith("/documents/users/alice/orders/1")
        assert reference == database.collection("users/alice/orders").document("1")

    def test_invalid_paths(self, database):
        with pytest.raises(InvalidArgumentError):
            database.document("users")

        with pytest.raises(InvalidArgumentError):
            database.collection("users/alice")

    def test_query_builder_is_immutable(self, database):
        collection = database.collection("users")

        query = collection.where("age", ">=", 18).order_by("age", DESCENDING).limit(10)

        assert collection.to_structured_query().where == []
        structured = query.to_structured_query()
        assert structured.from_collection == "users"
        assert structured.where[0].field == "age"
        assert structured.order_by[0].direction == DESCENDING
        assert structured.limit == 10

    def test_query_rejects_unknown_operator(self, database):
        with pytest.raises(InvalidArgumentError):
            database.collection("users").where("age", "~", 1)

    def test_subcollection_parent(self, database):
        query = database.document("users/alice").collection("orders")

        assert query.parent_path == f"{database.documents_path}/users/alice"

    @pytest.mark.asyncio
    async def test_plain_snapshot_has_no_transaction(self, database, client):
        client.documents[database.document("users/alice").full_path] = {"profile": {"age": 30}}

        snapshot = await database.document("users/alice").snapshot()

        assert client.calls("batch_get_documents")[0].transaction is None
        assert snapshot.get("profile.age") == 30
        assert snapshot.get("profile.missing", "n/a") == "n/a"
