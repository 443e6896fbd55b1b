from __future__ import annotations

import pytest

from sqlite_agent.errors import ConfigurationError, StorageError
from sqlite_agent.storage import Affinity, TabularStore, is_embedding_column, quote_identifier, type_affinity


@pytest.mark.parametrize(
    ("declared", "expected"),
    [
        ("INTEGER", Affinity.INTEGER),
        ("BIGINT", Affinity.INTEGER),
        ("VARCHAR(40)", Affinity.TEXT),
        ("TEXT", Affinity.TEXT),
        ("BLOB", Affinity.BLOB),
        ("", Affinity.BLOB),
        ("DOUBLE PRECISION", Affinity.REAL),
        ("FLOAT", Affinity.REAL),
        ("DECIMAL(10,2)", Affinity.NUMERIC),
        ("BOOLEAN", Affinity.NUMERIC),
    ],
)
def test_type_affinity_follows_sqlite_rules(declared: str, expected: Affinity) -> None:
    assert type_affinity(declared) is expected


def test_embedding_columns_need_blob_and_name() -> None:
    assert is_embedding_column("embedding", "BLOB")
    assert is_embedding_column("title_embedding", "blob")
    assert not is_embedding_column("embedding", "TEXT")
    assert not is_embedding_column("embeddings", "BLOB")
    assert not is_embedding_column("photo", "BLOB")


def test_table_schema_lists_columns_in_order(listings_store: TabularStore) -> None:
    schema = listings_store.table_schema("listings")
    assert [column.name for column in schema] == ["id", "title", "price", "embedding"]
    assert [column.name for column in schema.value_columns] == ["id", "title", "price"]
    assert [column.name for column in schema.embedding_columns] == ["embedding"]
    assert [column.name for column in schema.text_columns] == ["title"]


def test_describe_hides_embedding_columns(listings_store: TabularStore) -> None:
    description = listings_store.table_schema("listings").describe()
    assert "id (INTEGER)" in description
    assert "title (TEXT)" in description
    assert "embedding" not in description


def test_missing_table_has_no_columns(store: TabularStore) -> None:
    assert len(store.table_schema("nope")) == 0


def test_insert_rows_commits_all_rows(listings_store: TabularStore) -> None:
    inserted = listings_store.insert_rows("listings", ["id", "title"], [[1, "a"], [2, "b"]])
    assert inserted == 2
    rows = listings_store.query("SELECT id, title FROM listings ORDER BY id")
    assert [tuple(row) for row in rows] == [(1, "a"), (2, "b")]


def test_insert_failure_rolls_back_every_row(store: TabularStore) -> None:
    store.executescript("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT NOT NULL);")
    with pytest.raises(StorageError, match="Failed to insert row"):
        store.insert_rows("items", ["id", "name"], [[1, "ok"], [2, None], [3, "never"]])
    assert store.query("SELECT COUNT(*) AS n FROM items")[0]["n"] == 0


def test_insert_without_columns_uses_defaults(store: TabularStore) -> None:
    store.executescript("CREATE TABLE bare (id INTEGER PRIMARY KEY, embedding BLOB);")
    assert store.insert_rows("bare", [], [[], []]) == 2


def test_identifiers_are_quoted() -> None:
    assert quote_identifier('we"ird') == '"we""ird"'
    with pytest.raises(ConfigurationError):
        quote_identifier("")


def test_from_config_uses_db_path(tmp_path) -> None:
    db_path = tmp_path / "nested" / "db.sqlite"
    with TabularStore.from_config({"paths": {"db_path": str(db_path)}}) as store:
        store.executescript("CREATE TABLE t (x INTEGER);")
    assert db_path.exists()


def test_closed_store_rejects_queries(tmp_path) -> None:
    store = TabularStore(":memory:")
    store.close()
    with pytest.raises(StorageError):
        store.query("SELECT 1")
