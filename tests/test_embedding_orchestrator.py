from __future__ import annotations

from typing import List

from sqlite_agent.embedding import EmbeddingOrchestrator, parse_column_list
from sqlite_agent.models.embeddings import EmbeddingClient, HashEmbeddingClient, unpack_vector
from sqlite_agent.models.llm_client import LLMTransportError
from sqlite_agent.storage import TabularStore, VectorIndex


class RecordingEmbedder(EmbeddingClient):
    def __init__(self, dimension: int = 4) -> None:
        self._dimension = dimension
        self.texts: List[str] = []

    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        return [float(len(text))] + [0.0] * (self._dimension - 1)


def _seed(store: TabularStore) -> None:
    store.executescript(
        """
        CREATE TABLE listings (
            id INTEGER,
            title TEXT,
            description TEXT,
            price REAL,
            embedding BLOB,
            photo_embedding BLOB
        );
        """
    )
    store.insert_rows(
        "listings",
        ["id", "title", "description"],
        [[1, "Loft", "Near the river"], [2, "Studio", None]],
    )


def test_parse_column_list_keeps_known_names_in_order() -> None:
    candidates = ["title", "description", "city"]
    assert parse_column_list(" description, `title`, price, title\n", candidates) == ["description", "title"]
    assert parse_column_list("", candidates) == []


def test_columns_are_embedded_and_indexed(make_chat, store: TabularStore) -> None:
    _seed(store)
    embedder = RecordingEmbedder()
    chat = make_chat("title, description", "description")
    report = EmbeddingOrchestrator(chat, embedder, store).run(store.table_schema("listings"))

    assert report.mappings == {"embedding": ["title", "description"], "photo_embedding": ["description"]}
    assert report.updated == {"embedding": 2, "photo_embedding": 2}
    assert "Loft | Near the river" in embedder.texts
    assert "Studio | " in embedder.texts
    assert "Table has columns: title, description" in chat.prompts[0]
    assert "'photo_embedding'" in chat.prompts[1]

    blob = store.query("SELECT embedding FROM listings WHERE id = 1")[0]["embedding"]
    assert unpack_vector(blob).tolist() == [float(len("Loft | Near the river")), 0.0, 0.0, 0.0]

    index = VectorIndex(store)
    assert [spec.column for spec in report.indexes] == ["embedding", "photo_embedding"]
    assert index.get("listings", "embedding").dimension == 4
    assert index.get("listings", "embedding").distance == "cosine"


def test_only_null_embeddings_are_filled(make_chat, store: TabularStore) -> None:
    _seed(store)
    store.update("UPDATE listings SET embedding = x'00' WHERE id = 2")
    embedder = RecordingEmbedder()
    report = EmbeddingOrchestrator(make_chat("title", "title"), embedder, store).run(
        store.table_schema("listings")
    )
    assert report.updated["embedding"] == 1


def test_unusable_mapping_skips_the_column(make_chat, store: TabularStore) -> None:
    _seed(store)
    chat = make_chat("price, nonsense", LLMTransportError("down"))
    report = EmbeddingOrchestrator(chat, HashEmbeddingClient(8), store).run(store.table_schema("listings"))

    assert report.mappings == {}
    assert report.skipped == ["embedding", "photo_embedding"]
    assert store.query("SELECT COUNT(*) AS n FROM listings WHERE embedding IS NULL")[0]["n"] == 2
    # Indexes are still registered for every embedding column.
    assert len(report.indexes) == 2


def test_table_without_text_columns_is_skipped(make_chat, store: TabularStore) -> None:
    store.executescript("CREATE TABLE points (x REAL, embedding BLOB);")
    store.insert_rows("points", ["x"], [[1.0]])
    chat = make_chat()
    report = EmbeddingOrchestrator(chat, HashEmbeddingClient(8), store).run(store.table_schema("points"))

    assert report.skipped == ["embedding"]
    assert chat.prompts == []
