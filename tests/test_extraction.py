from __future__ import annotations

import pytest

from sqlite_agent.conversation import ConversationState
from sqlite_agent.errors import ConfigurationError, StorageError
from sqlite_agent.extraction import ExtractionPipeline, RawValue, coerce_value, find_value, iter_object_spans
from sqlite_agent.models.llm_client import LLMTransportError
from sqlite_agent.storage import Affinity, TabularStore


def _conversation(text: str = "Tool search returned: {}\n") -> ConversationState:
    state = ConversationState(capacity=1024)
    state.append(text)
    return state


def test_quoted_numbers_become_integers(make_chat, listings_store: TabularStore) -> None:
    chat = make_chat('[{"id":"42","title":"Flat"}]')
    pipeline = ExtractionPipeline(chat, listings_store)
    schema = listings_store.table_schema("listings")

    assert pipeline.run(schema, _conversation()) == 1
    rows = listings_store.query("SELECT id, title, price, embedding FROM listings")
    assert [tuple(row) for row in rows] == [(42, "Flat", None, None)]
    assert "embedding (BLOB)" not in chat.prompts[0]


def test_spans_and_types_are_coerced(make_chat, listings_store: TabularStore) -> None:
    response = (
        "```json\n[\n"
        '  {"id": 1, "title": "Rome \\"Loft\\"", "price": "99.5"},\n'
        '  {"id": null, "title": 7, "price": 12},\n'
        '  {"title": "Only title"}\n'
        "]\n```"
    )
    pipeline = ExtractionPipeline(make_chat(response), listings_store)
    schema = listings_store.table_schema("listings")

    assert pipeline.run(schema, _conversation()) == 3
    rows = [tuple(row) for row in listings_store.query("SELECT id, title, price FROM listings ORDER BY rowid")]
    assert rows == [(1, 'Rome \\"Loft\\"', 99.5), (None, None, 12.0), (None, "Only title", None)]


def test_identical_inputs_produce_identical_rows(make_chat, listings_store: TabularStore) -> None:
    response = '[{"id": 5, "title": "A"}, {"id": 6, "title": "B", "price": 1.25}]'
    schema = listings_store.table_schema("listings")
    conversation = _conversation("Tool search returned: [5, 6]\n")

    first = ExtractionPipeline(make_chat(response), listings_store)
    second = ExtractionPipeline(make_chat(response), listings_store)
    assert first.extract_rows(schema, first.request(schema, conversation)) == second.extract_rows(
        schema, second.request(schema, conversation)
    )


def test_empty_response_inserts_nothing(make_chat, listings_store: TabularStore) -> None:
    pipeline = ExtractionPipeline(make_chat(None), listings_store)
    schema = listings_store.table_schema("listings")
    assert pipeline.request(schema, _conversation()) == "[]"
    assert pipeline.run(schema, _conversation()) == 0


def test_prompt_contains_bounded_history(make_chat, listings_store: TabularStore) -> None:
    chat = make_chat("[]")
    pipeline = ExtractionPipeline(chat, listings_store, history_limit=10)
    schema = listings_store.table_schema("listings")
    pipeline.run(schema, _conversation("0123456789ABCDEF"))

    prompt = chat.prompts[0]
    assert "0123456789" in prompt
    assert "ABCDEF" not in prompt
    assert prompt.count("title (TEXT)") == 2
    assert prompt.rstrip().endswith("Return ONLY the JSON array:")


def test_extraction_recreates_the_context(make_chat, listings_store: TabularStore) -> None:
    chat = make_chat("[]", default_context_size=2048)
    chat.create_context(50_000)
    ExtractionPipeline(chat, listings_store).run(listings_store.table_schema("listings"), _conversation())
    assert chat.context_sizes == [50_000, 50_000]
    assert len(chat.history) == 2


def test_transport_failure_is_a_configuration_error(make_chat, listings_store: TabularStore) -> None:
    pipeline = ExtractionPipeline(make_chat(LLMTransportError("down")), listings_store)
    with pytest.raises(ConfigurationError, match="Failed to extract structured data"):
        pipeline.run(listings_store.table_schema("listings"), _conversation())


def test_constraint_failure_discards_all_rows(make_chat, store: TabularStore) -> None:
    store.executescript("CREATE TABLE cities (id INTEGER PRIMARY KEY, name TEXT NOT NULL);")
    response = '[{"id": 1, "name": "Rome"}, {"id": 2}, {"id": 3, "name": "Oslo"}]'
    pipeline = ExtractionPipeline(make_chat(response), store)
    with pytest.raises(StorageError):
        pipeline.run(store.table_schema("cities"), _conversation())
    assert store.query("SELECT COUNT(*) AS n FROM cities")[0]["n"] == 0


def test_iter_object_spans_stops_at_first_closing_brace() -> None:
    spans = list(iter_object_spans('[{"a": 1}, {"b": {"c": 2}}, {"d": "x\\}y"}]'))
    assert spans == ['{"a": 1}', '{"b": {"c": 2}', '{"d": "x\\}y"}']


def test_find_value_requires_a_colon_after_the_key() -> None:
    span = '{"note": "title", "title": "Real"}'
    assert find_value(span, "title") == RawValue(text="Real", quoted=True)
    assert find_value(span, "missing") is None
    assert find_value('{"n": 12 }', "n") == RawValue(text="12")


@pytest.mark.parametrize(
    ("raw", "affinity", "expected"),
    [
        (RawValue("7"), Affinity.INTEGER, 7),
        (RawValue("7", quoted=True), Affinity.INTEGER, 7),
        (RawValue("7.0"), Affinity.INTEGER, 7),
        (RawValue("true"), Affinity.INTEGER, 1),
        (RawValue("false"), Affinity.INTEGER, 0),
        (RawValue("7.5"), Affinity.INTEGER, None),
        (RawValue("abc", quoted=True), Affinity.INTEGER, None),
        (RawValue("null"), Affinity.INTEGER, None),
        (RawValue("2.5", quoted=True), Affinity.REAL, 2.5),
        (RawValue("nan"), Affinity.REAL, None),
        (RawValue("2024-05-01", quoted=True), Affinity.NUMERIC, "2024-05-01"),
        (RawValue("12.50", quoted=True), Affinity.NUMERIC, "12.50"),
        (RawValue("3"), Affinity.NUMERIC, None),
        (RawValue("hello", quoted=True), Affinity.TEXT, "hello"),
        (RawValue("null", quoted=True), Affinity.TEXT, "null"),
        (RawValue("12"), Affinity.TEXT, None),
        (RawValue("null"), Affinity.TEXT, None),
        (None, Affinity.REAL, None),
    ],
)
def test_coerce_value(raw, affinity: Affinity, expected) -> None:
    assert coerce_value(raw, affinity) == expected


def test_declared_types_outside_integer_and_real_keep_quoted_text(make_chat, store: TabularStore) -> None:
    store.executescript(
        "CREATE TABLE events ("
        "id INTEGER, day DATE, amount DECIMAL(10,2), active BOOLEAN, title VARCHAR(20));"
    )
    response = '[{"id": 1, "day": "2024-05-01", "amount": "12.50", "active": "yes", "title": "Fair"}]'
    pipeline = ExtractionPipeline(make_chat(response, response), store)
    schema = store.table_schema("events")

    assert pipeline.extract_rows(schema, pipeline.request(schema, _conversation())) == [
        {"id": 1, "day": "2024-05-01", "amount": "12.50", "active": "yes", "title": "Fair"}
    ]
    assert pipeline.run(schema, _conversation()) == 1
    row = store.query("SELECT id, day, active, title FROM events")[0]
    assert tuple(row) == (1, "2024-05-01", "yes", "Fair")


def test_bare_tokens_for_text_like_declared_types_are_null(make_chat, store: TabularStore) -> None:
    store.executescript("CREATE TABLE flags (day DATE, active BOOLEAN, label VARCHAR(20));")
    pipeline = ExtractionPipeline(make_chat('[{"day": 20240501, "active": true, "label": 5}]'), store)

    assert pipeline.run(store.table_schema("flags"), _conversation()) == 1
    assert tuple(store.query("SELECT day, active, label FROM flags")[0]) == (None, None, None)
