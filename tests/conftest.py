from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sqlite_agent.models.llm_client import ChatClient  # noqa: E402
from sqlite_agent.storage.store import TabularStore  # noqa: E402
from sqlite_agent.tools.catalog import ToolRegistry  # noqa: E402


class ScriptedChat(ChatClient):
    """Chat client replaying canned replies; exceptions in the script are raised."""

    def __init__(self, replies: Iterable[Any], *, default_context_size: int = 4096) -> None:
        super().__init__(
            "scripted-model",
            default_context_size=default_context_size,
            max_attempts=1,
            retry_delay=0.0,
        )
        self.replies: List[Any] = list(replies)
        self.prompts: List[str] = []
        self.context_sizes: List[int] = []

    def create_context(self, size: Optional[int] = None) -> None:
        super().create_context(size)
        self.context_sizes.append(self.context_size())

    def _raw_invoke(self, payload: Dict[str, Any]) -> Optional[str]:
        self.prompts.append(payload["input"][-1]["content"][0]["text"])
        if not self.replies:
            return None
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture()
def make_chat():
    def _factory(*replies: Any, default_context_size: int = 4096) -> ScriptedChat:
        return ScriptedChat(replies, default_context_size=default_context_size)

    return _factory


@pytest.fixture()
def store(tmp_path: Path):
    with TabularStore(tmp_path / "agent.sqlite") as tabular:
        yield tabular


@pytest.fixture()
def listings_store(store: TabularStore) -> TabularStore:
    store.executescript(
        """
        CREATE TABLE listings (
            id INTEGER,
            title TEXT,
            price REAL,
            embedding BLOB
        );
        """
    )
    return store


@pytest.fixture()
def registry() -> ToolRegistry:
    tools = ToolRegistry()

    @tools.tool(description="Search listings by city.")
    def search(q: str = "") -> Dict[str, Any]:
        return {"items": [{"id": 101, "title": f"{q.title()} Flat", "price": 120.5}]}

    @tools.tool(description="Fetch one listing.")
    def fetch(id: int) -> str:
        return f'{{"id": {id}, "title": "Loft"}}'

    return tools
