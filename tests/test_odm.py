import os
from typing import Any, List, Optional

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from google.cloud.firestore_v1.base_query import FieldFilter

from firestore_social_graph import (
    BaseFirestoreModel,
    BatchOperation,
    ConflictError,
    FirestoreDB,
    FirestoreOperators,
    OrderByDirection,
    SocialGraphSettings,
    SubCollectionAccessor,
    init_firestore_odm,
)
from firestore_social_graph.pydantic_compat import BaseModel, Field


# ---------------------------------------------------------------------------
# Model hierarchy for tests: Author -> Note -> Reaction
# ---------------------------------------------------------------------------
class Author(BaseFirestoreModel):
    class Settings:
        name = "authors"

    name: str
    email: str
    display_name: Optional[str] = Field(default=None, alias="displayName")


class Note(BaseFirestoreModel):
    class Settings:
        name = "notes"
        parent = Author

    text: str


class Reaction(BaseFirestoreModel):
    class Settings:
        name = "reactions"
        parent = Note

    emoji: str


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_firestore_client():
    return MagicMock()


@pytest.fixture
def firestore_db(mock_firestore_client):
    return FirestoreDB(project_id="test-project", client=mock_firestore_client)


@pytest_asyncio.fixture
async def initialized_models(firestore_db):
    init_firestore_odm(firestore_db, [Author, Note, Reaction])
    return {"Author": Author, "Note": Note, "Reaction": Reaction}


async def mock_stream(docs: List[Any]):
    for doc in docs:
        yield doc


def make_snapshot(doc_id, data, exists=True):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


def only_filter(where_mock) -> FieldFilter:
    where_mock.assert_called_once()
    return where_mock.call_args.kwargs["filter"]


# ---------------------------------------------------------------------------
# FirestoreDB
# ---------------------------------------------------------------------------
def test_firestore_db_init(firestore_db, mock_firestore_client):
    assert firestore_db.project_id == "test-project"
    assert firestore_db.client is mock_firestore_client


def test_firestore_db_from_settings(monkeypatch):
    client_cls = MagicMock()
    monkeypatch.setattr("firestore_social_graph.firestore_client.AsyncClient", client_cls)
    monkeypatch.delenv("FIRESTORE_EMULATOR_HOST", raising=False)

    db = FirestoreDB.from_settings(SocialGraphSettings(project_id="demo", database="social"))

    client_cls.assert_called_once_with(project="demo", database="social", credentials=None)
    assert db.client is client_cls.return_value


def test_firestore_db_emulator(firestore_db, monkeypatch):
    monkeypatch.setattr("firestore_social_graph.firestore_client.AsyncClient", MagicMock())
    monkeypatch.delenv("FIRESTORE_EMULATOR_HOST", raising=False)

    firestore_db.use_emulator("localhost:9090")
    assert firestore_db._emulator_host == "localhost:9090"
    assert os.environ["FIRESTORE_EMULATOR_HOST"] == "localhost:9090"

    firestore_db.clear_emulator()
    assert firestore_db._emulator_host is None
    assert "FIRESTORE_EMULATOR_HOST" not in os.environ


def test_firestore_db_mock(firestore_db):
    firestore_db.mock_firestore_for_tests()
    assert isinstance(firestore_db.client, MagicMock)


def recording_transactional(calls):
    """Stand-in for ``async_transactional`` that records what it wraps."""

    def decorator(to_wrap):
        async def run(transaction, *args, **kwargs):
            calls.append(transaction)
            return await to_wrap(transaction, *args, **kwargs)

        return run

    return decorator


@pytest.mark.asyncio
async def test_run_transaction_wraps_callback(firestore_db, mock_firestore_client, monkeypatch):
    calls = []
    monkeypatch.setattr(
        "firestore_social_graph.firestore_client.async_transactional",
        recording_transactional(calls),
    )
    callback = AsyncMock(return_value="done")

    result = await firestore_db.run_transaction(callback, "alice", role="admin")

    transaction = mock_firestore_client.transaction.return_value
    assert result == "done"
    assert calls == [transaction]
    callback.assert_awaited_once_with(transaction, "alice", role="admin")


@pytest.mark.asyncio
async def test_run_transaction_propagates_callback_errors(firestore_db, monkeypatch):
    monkeypatch.setattr(
        "firestore_social_graph.firestore_client.async_transactional",
        recording_transactional([]),
    )
    callback = AsyncMock(side_effect=ConflictError("Already friends"))

    with pytest.raises(ConflictError):
        await firestore_db.run_transaction(callback)


def test_model_without_db_raises():
    class Orphan(BaseFirestoreModel):
        class Settings:
            name = "orphans"

    with pytest.raises(RuntimeError, match="must be initialized"):
        Orphan.collection_ref()


# ---------------------------------------------------------------------------
# Query fields
# ---------------------------------------------------------------------------
def test_field_comparisons_build_filters(initialized_models):
    flt = Author.name == "Alice"
    assert isinstance(flt, FieldFilter)
    assert (flt.field_path, flt.op_string, flt.value) == ("name", "==", "Alice")

    flt = Author.display_name != "Bob"
    assert (flt.field_path, flt.op_string) == ("displayName", "!=")

    flt = Author.email.in_(["a@x.io", "b@x.io"])
    assert (flt.op_string, flt.value) == ("in", ["a@x.io", "b@x.io"])

    assert str(Author.id) == "__name__"


def test_instances_keep_their_values(initialized_models):
    author = Author(id="a1", name="Alice", email="alice@example.com", displayName="Al")
    assert author.name == "Alice"
    assert author.display_name == "Al"


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_save_document(initialized_models):
    author = Author(name="Alice", email="alice@example.com")

    doc_ref_mock = MagicMock()
    doc_ref_mock.id = "mock_id"
    doc_ref_mock.set = AsyncMock()
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    saved = await author.save()

    Author._db.client.collection.assert_called_with("authors")
    collection_ref_mock.document.assert_called_once_with()
    doc_ref_mock.set.assert_awaited_once_with({"name": "Alice", "email": "alice@example.com"})
    assert saved.id == "mock_id"


@pytest.mark.asyncio
async def test_save_with_taken_id_raises(initialized_models):
    author = Author(id="a1", name="Alice", email="alice@example.com")

    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=make_snapshot("a1", {}, exists=True))
    doc_ref_mock.set = AsyncMock()
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    with pytest.raises(RuntimeError, match="already exists"):
        await author.save()
    doc_ref_mock.set.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_document_uses_aliases(initialized_models):
    author = Author(id="a1", name="Alice", email="alice@example.com", display_name="Al")

    doc_ref_mock = MagicMock()
    doc_ref_mock.update = AsyncMock()
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    await author.update()

    doc_ref_mock.update.assert_awaited_once_with(
        {"name": "Alice", "email": "alice@example.com", "displayName": "Al"}
    )


@pytest.mark.asyncio
async def test_delete_document(initialized_models):
    author = Author(id="a1", name="Alice", email="alice@example.com")

    doc_ref_mock = MagicMock()
    doc_ref_mock.delete = AsyncMock()
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    await author.delete()

    collection_ref_mock.document.assert_called_once_with("a1")
    doc_ref_mock.delete.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_document(initialized_models):
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(
        return_value=make_snapshot("a1", {"name": "Alice", "email": "alice@example.com", "displayName": "Al"})
    )
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    author = await Author.get("a1")

    doc_ref_mock.get.assert_awaited_once_with(transaction=None)
    assert author.id == "a1"
    assert author.display_name == "Al"


@pytest.mark.asyncio
async def test_get_missing_document(initialized_models):
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=make_snapshot("a1", None, exists=False))
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    assert await Author.get("a1") is None
    assert await Author.exists("a1") is False


@pytest.mark.asyncio
async def test_get_inside_transaction(initialized_models):
    transaction = MagicMock()
    doc_ref_mock = MagicMock()
    doc_ref_mock.get = AsyncMock(return_value=make_snapshot("a1", {"name": "A", "email": "a@x.io"}))
    collection_ref_mock = MagicMock()
    collection_ref_mock.document.return_value = doc_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    await Author.get("a1", transaction=transaction)

    doc_ref_mock.get.assert_awaited_once_with(transaction=transaction)


# ---------------------------------------------------------------------------
# count()
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_count_uses_aggregation(initialized_models):
    aggregate = MagicMock()
    aggregate.get = AsyncMock(return_value=[[MagicMock(value=7)]])
    collection_ref_mock = MagicMock()
    collection_ref_mock.count.return_value = aggregate
    Author._db.client.collection.return_value = collection_ref_mock

    assert await Author.count() == 7
    collection_ref_mock.where.assert_not_called()


@pytest.mark.asyncio
async def test_count_falls_back_to_empty_select(initialized_models):
    query_mock = MagicMock()
    query_mock.count = MagicMock(side_effect=AttributeError("No .count() method"))
    query_mock.select.return_value.get = AsyncMock(return_value=[MagicMock(), MagicMock(), MagicMock()])
    collection_ref_mock = MagicMock()
    collection_ref_mock.where.return_value = query_mock
    Author._db.client.collection.return_value = collection_ref_mock

    total = await Author.count([(Author.name, "==", "Alice")])

    flt = only_filter(collection_ref_mock.where)
    assert (flt.field_path, flt.op_string, flt.value) == ("name", "==", "Alice")
    query_mock.select.assert_called_once_with([])
    assert total == 3


# ---------------------------------------------------------------------------
# find() and find_one()
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_find_no_filters(initialized_models):
    docs = [
        make_snapshot("doc1", {"name": "Alice", "email": "alice@example.com"}),
        make_snapshot("doc2", {"name": "Bob", "email": "bob@example.com"}),
    ]
    collection_ref_mock = MagicMock()
    collection_ref_mock.stream = lambda **kwargs: mock_stream(docs)
    Author._db.client.collection.return_value = collection_ref_mock

    results = [item async for item in Author.find()]

    collection_ref_mock.where.assert_not_called()
    assert [r.id for r in results] == ["doc1", "doc2"]


@pytest.mark.asyncio
async def test_find_with_enum_operator_order_and_limit(initialized_models):
    query_mock = MagicMock()
    query_mock.order_by.return_value = query_mock
    query_mock.limit.return_value = query_mock
    query_mock.offset.return_value = query_mock
    query_mock.stream = lambda **kwargs: mock_stream([])
    collection_ref_mock = MagicMock()
    collection_ref_mock.where.return_value = query_mock
    Author._db.client.collection.return_value = collection_ref_mock

    results = [
        item
        async for item in Author.find(
            filters=[(Author.name, FirestoreOperators.IN, ["Alice", "Bob"])],
            order_by=(Author.name, OrderByDirection.DESCENDING),
            limit=5,
            offset=10,
        )
    ]

    flt = only_filter(collection_ref_mock.where)
    assert (flt.field_path, flt.op_string) == ("name", "in")
    query_mock.order_by.assert_called_once_with("name", direction="DESCENDING")
    query_mock.offset.assert_called_once_with(10)
    query_mock.limit.assert_called_once_with(5)
    assert results == []


@pytest.mark.asyncio
async def test_find_with_filters_and_projection(initialized_models):
    query_mock = MagicMock()
    query_mock.stream = lambda **kwargs: mock_stream([make_snapshot("doc1", {"name": "Alice"})])
    query_mock.select.return_value = query_mock
    collection_ref_mock = MagicMock()
    collection_ref_mock.where.return_value = query_mock
    Author._db.client.collection.return_value = collection_ref_mock

    class NameOnly(BaseModel):
        id: Optional[str] = None
        name: str

    results = [
        doc async for doc in Author.find(filters=[Author.name == "Alice"], projection=NameOnly)
    ]

    query_mock.select.assert_called_once_with(["id", "name"])
    assert len(results) == 1
    assert isinstance(results[0], NameOnly)
    assert results[0].id == "doc1"


@pytest.mark.asyncio
async def test_find_one(initialized_models):
    query_mock = MagicMock()
    query_mock.limit.return_value = query_mock
    query_mock.stream = lambda **kwargs: mock_stream(
        [make_snapshot("unique123", {"name": "Charlie", "email": "charlie@example.com"})]
    )
    collection_ref_mock = MagicMock()
    collection_ref_mock.where.return_value = query_mock
    Author._db.client.collection.return_value = collection_ref_mock

    author = await Author.find_one(filters=[Author.email == "charlie@example.com"])

    query_mock.limit.assert_called_once_with(1)
    assert author.id == "unique123"
    assert author.name == "Charlie"


@pytest.mark.asyncio
async def test_find_passes_transaction_to_stream(initialized_models):
    seen = {}

    def stream(transaction=None):
        seen["transaction"] = transaction
        return mock_stream([])

    transaction = MagicMock()
    collection_ref_mock = MagicMock()
    collection_ref_mock.stream = stream
    collection_ref_mock.limit.return_value = collection_ref_mock
    Author._db.client.collection.return_value = collection_ref_mock

    assert await Author.find_one(transaction=transaction) is None
    assert seen["transaction"] is transaction


# ---------------------------------------------------------------------------
# batch_write()
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_batch_write(initialized_models):
    batch_mock = MagicMock()
    batch_mock.commit = AsyncMock()
    Author._db.client.batch.return_value = batch_mock

    to_create = Author(name="Daisy", email="daisy@example.com")
    to_update = Author(id="upd123", name="Alice", email="alice2@example.com")
    to_delete = Author(id="del123", name="Gone", email="gone@example.com")

    doc_ref_create, doc_ref_update, doc_ref_delete = MagicMock(), MagicMock(), MagicMock()
    doc_ref_create.id = "new_id"

    def document(doc_id=None):
        return {None: doc_ref_create, "upd123": doc_ref_update, "del123": doc_ref_delete}[doc_id]

    collection_mock = MagicMock()
    collection_mock.document.side_effect = document
    Author._db.client.collection.return_value = collection_mock

    await Author.batch_write(
        [
            (BatchOperation.CREATE, to_create),
            (BatchOperation.UPDATE, to_update),
            (BatchOperation.DELETE, to_delete),
        ]
    )

    batch_mock.set.assert_any_call(doc_ref_create, {"name": "Daisy", "email": "daisy@example.com"})
    assert to_create.id == "new_id"
    batch_mock.update.assert_any_call(doc_ref_update, {"name": "Alice", "email": "alice2@example.com"})
    batch_mock.delete.assert_any_call(doc_ref_delete)
    batch_mock.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_batch_write_stages_on_transaction(initialized_models):
    transaction = MagicMock()
    doc_ref = MagicMock()
    collection_mock = MagicMock()
    collection_mock.document.return_value = doc_ref
    Author._db.client.collection.return_value = collection_mock

    await Author.batch_write(
        [(BatchOperation.DELETE, Author(id="a1", name="A", email="a@x.io"))],
        transaction=transaction,
    )

    transaction.delete.assert_called_once_with(doc_ref)
    Author._db.client.batch.assert_not_called()


@pytest.mark.asyncio
async def test_batch_write_requires_ids(initialized_models):
    with pytest.raises(ValueError, match="without an ID"):
        await Author.batch_write([(BatchOperation.DELETE, Author(name="A", email="a@x.io"))])


# ---------------------------------------------------------------------------
# Subcollections
# ---------------------------------------------------------------------------
class TestSubcollections:

    @pytest.mark.asyncio
    async def test_save_with_parent_instance(self, initialized_models):
        author = Author(id="a1", name="Alice", email="alice@example.com")
        doc_ref_mock = MagicMock()
        doc_ref_mock.id = "n1"
        doc_ref_mock.set = AsyncMock()
        collection_ref_mock = MagicMock()
        collection_ref_mock.document.return_value = doc_ref_mock
        Note._db.client.collection.return_value = collection_ref_mock

        saved = await Note(text="hello").save(parent=author)

        Note._db.client.collection.assert_called_with("authors/a1/notes")
        assert saved._parent_path == "authors/a1"
        assert saved.document_path == "authors/a1/notes/n1"

    @pytest.mark.asyncio
    async def test_save_without_parent_raises(self, initialized_models):
        with pytest.raises(RuntimeError, match="requires a parent"):
            await Note(text="hello").save()

    def test_parent_by_bare_id_or_path(self, initialized_models):
        assert Note._get_collection_path("a1") == "authors/a1/notes"
        assert Note._get_collection_path("authors/a1") == "authors/a1/notes"

    def test_nested_parent_needs_instance_or_path(self, initialized_models):
        with pytest.raises(ValueError, match="bare id"):
            Reaction._get_collection_path("n1")

        note = Note(id="n1", text="hello").bind_parent("a1")
        assert Reaction._get_collection_path(note) == "authors/a1/notes/n1/reactions"

    @pytest.mark.asyncio
    async def test_get_binds_parent_path(self, initialized_models):
        doc_ref_mock = MagicMock()
        doc_ref_mock.get = AsyncMock(return_value=make_snapshot("n1", {"text": "hello"}))
        collection_ref_mock = MagicMock()
        collection_ref_mock.document.return_value = doc_ref_mock
        Note._db.client.collection.return_value = collection_ref_mock

        note = await Note.get("n1", parent="a1")

        Note._db.client.collection.assert_called_with("authors/a1/notes")
        assert note._parent_path == "authors/a1"

    @pytest.mark.asyncio
    async def test_accessor_lists_children(self, initialized_models):
        author = Author(id="a1", name="Alice", email="alice@example.com")
        collection_ref_mock = MagicMock()
        collection_ref_mock.stream = lambda **kwargs: mock_stream(
            [make_snapshot("n1", {"text": "one"}), make_snapshot("n2", {"text": "two"})]
        )
        Note._db.client.collection.return_value = collection_ref_mock

        accessor = author.subcollection(Note)

        assert isinstance(accessor, SubCollectionAccessor)
        assert await accessor.ids() == ["n1", "n2"]
        Note._db.client.collection.assert_called_with("authors/a1/notes")

    @pytest.mark.asyncio
    async def test_accessor_add_and_get(self, initialized_models):
        author = Author(id="a1", name="Alice", email="alice@example.com")
        doc_ref_mock = MagicMock()
        doc_ref_mock.id = "n9"
        doc_ref_mock.set = AsyncMock()
        doc_ref_mock.get = AsyncMock(return_value=make_snapshot("n9", {"text": "saved"}))
        collection_ref_mock = MagicMock()
        collection_ref_mock.document.return_value = doc_ref_mock
        Note._db.client.collection.return_value = collection_ref_mock

        accessor = author.subcollection(Note)
        added = await accessor.add(Note(text="saved"))
        fetched = await accessor.get("n9")

        assert added.document_path == "authors/a1/notes/n9"
        assert fetched.text == "saved"
        assert await accessor.exists("n9") is True

    def test_accessor_rejects_wrong_parent(self, initialized_models):
        author = Author(id="a1", name="Alice", email="alice@example.com")
        with pytest.raises(ValueError, match="does not declare"):
            author.subcollection(Reaction)

    @pytest.mark.asyncio
    async def test_batch_write_uses_bound_parent(self, initialized_models):
        batch_mock = MagicMock()
        batch_mock.commit = AsyncMock()
        Note._db.client.batch.return_value = batch_mock

        await Note.batch_write([(BatchOperation.CREATE, Note(id="n1", text="x").bind_parent("a1"))])

        Note._db.client.collection.assert_called_with("authors/a1/notes")
        batch_mock.commit.assert_awaited_once()
