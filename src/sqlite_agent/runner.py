"""Goal runner driving the model through tool calls, in free-form or table mode."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .budget import ContextBudgetPlanner
from .config import configure_logging, section
from .conversation import ConversationState
from .embedding import EmbeddingOrchestrator
from .errors import ConfigurationError, RepeatedFailure, ToolInvocationError
from .extraction import ExtractionPipeline
from .guard import ErrorLoopGuard, substring_marker
from .models.embeddings import EmbeddingClient
from .models.llm_client import ChatClient, LLMClientError, normalise_model_text
from .parser import ParseMode, has_template_markers, parse
from .prompts import (
    CONTINUE_NUDGE,
    DONE_SENTINEL,
    render_free_form_prompt,
    render_table_task_prompt,
    render_template_rejection,
    render_tool_feedback,
)
from .storage.schema import TargetSchema
from .storage.store import TabularStore
from .tools.catalog import ToolCatalog
from .tools.run_log import RunLog

__all__ = ["Goal", "GoalRunner", "agent_version", "run"]

LOGGER = logging.getLogger(__name__)


class Goal(BaseModel):
    """One task for the runner; fixed for the duration of the run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str
    table_name: Optional[str] = None
    max_iterations: int = Field(default=5, ge=1)
    system_prompt: Optional[str] = None

    @field_validator("text")
    @classmethod
    def _require_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("goal text must be non-empty")
        return value

    @field_validator("table_name", "system_prompt")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @property
    def mode(self) -> ParseMode:
        return ParseMode.JSON if self.table_name else ParseMode.FREE_FORM

    @classmethod
    def create(
        cls,
        text: Optional[str],
        table_name: Optional[str] = None,
        max_iterations: int = 5,
        system_prompt: Optional[str] = None,
    ) -> "Goal":
        """Validate user input, reporting problems as ``ConfigurationError``."""
        if text is None or not str(text).strip():
            raise ConfigurationError("Goal must be a non-empty string")
        try:
            return cls(
                text=text,
                table_name=table_name,
                max_iterations=max_iterations,
                system_prompt=system_prompt,
            )
        except ValidationError as error:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in error.errors()
            )
            raise ConfigurationError(f"Invalid goal: {problems}") from error


class GoalRunner:
    """Compose parser, budget, guard, and extraction into the two run modes.

    Free-form mode returns the model's final text. Table mode collects tool
    results, extracts rows into ``goal.table_name`` in one transaction, embeds
    them when the table has embedding columns, and returns the row count.
    Every run gets its own conversation buffer and error tracker.
    """

    def __init__(
        self,
        chat: Optional[ChatClient],
        tools: Optional[ToolCatalog],
        *,
        store: Optional[TabularStore] = None,
        embedder: Optional[EmbeddingClient] = None,
        config: Mapping[str, Any] | None = None,
        planner: Optional[ContextBudgetPlanner] = None,
        logs_root: Optional[Path] = None,
    ) -> None:
        self._chat = chat
        self._tools = tools
        self._store = store
        self._embedder = embedder
        self._config: Mapping[str, Any] = config or {}
        self._planner = planner or ContextBudgetPlanner.from_config(self._config)

        agent_cfg = section(self._config, "agent")
        self._conversation_capacity = int(agent_cfg["conversation_capacity"])
        self._name_capacity = int(agent_cfg["tool_name_capacity"])
        errors_cfg = section(self._config, "errors")
        self._free_form_markers = tuple(
            substring_marker(marker) for marker in errors_cfg.get("free_form_markers") or ()
        )

        logging_cfg = section(self._config, "logging")
        if logs_root is None and logging_cfg.get("run_logs"):
            logs_root = Path(section(self._config, "paths")["logs"])
        self._logs_root = logs_root
        self._run_log: Optional[RunLog] = None

    @property
    def config(self) -> Mapping[str, Any]:
        return self._config

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any] | None,
        *,
        tools: Optional[ToolCatalog],
        chat: Optional[ChatClient] = None,
        store: Optional[TabularStore] = None,
        embedder: Optional[EmbeddingClient] = None,
    ) -> "GoalRunner":
        """Build missing collaborators from the ``models`` and ``paths`` sections."""
        from .models.factory import build_chat_client, build_embedding_client

        return cls(
            chat or build_chat_client(config),
            tools,
            store=store or TabularStore.from_config(config),
            embedder=embedder or build_embedding_client(config),
            config=config,
        )

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #
    def run(self, goal: Goal) -> str | int:
        self._require_chat()
        self._run_log = RunLog(goal=goal.text, mode=goal.mode.value, table=goal.table_name)
        try:
            outcome: str | int = self.run_table(goal) if goal.table_name else self.run_free_form(goal)
        except Exception as error:
            self._write_run_log(error=error)
            raise
        self._write_run_log(outcome=outcome)
        return outcome

    # ------------------------------------------------------------------ #
    # Free-form mode
    # ------------------------------------------------------------------ #
    def run_free_form(self, goal: Goal) -> str:
        chat = self._require_chat()
        catalog = self._list_tools()
        catalog_bytes = _byte_length(catalog)
        base_prompt = goal.system_prompt or render_free_form_prompt(catalog, goal.text)
        base_size = self._planner.base_context_size(catalog_bytes, chat.context_size())
        chat.create_context(base_size)
        per_tool = self._planner.truncate_length(
            base_size, catalog_bytes, _byte_length(base_prompt), goal.max_iterations
        )

        last_result = ""
        feedback = ""
        for iteration in range(1, goal.max_iterations + 1):
            LOGGER.debug("Iteration %d/%d", iteration, goal.max_iterations)
            prompt = f"{base_prompt}\n\n{feedback}" if feedback else base_prompt
            try:
                response = chat.respond(prompt)
            except LLMClientError as error:
                raise ConfigurationError("LLM did not respond") from error
            if response is None or not response.strip():
                LOGGER.info("Model returned no text; ending run")
                self._record("empty_response", iteration)
                break
            LOGGER.debug("LLM response: %s", response[:500])
            self._record("response", iteration, text=response[:500])

            if DONE_SENTINEL in response:
                LOGGER.info("Model signalled completion at iteration %d", iteration)
                return response

            invocation = parse(ParseMode.FREE_FORM, response, name_capacity=self._name_capacity)
            if invocation is None:
                return response

            LOGGER.info("Calling tool %s", invocation.name)
            self._record("tool_call", iteration, tool=invocation.name, args=invocation.args)
            try:
                result = self._require_tools().call_tool(invocation.name, invocation.args)
            except ToolInvocationError as error:
                LOGGER.warning("%s", error)
                self._record("tool_unreachable", iteration, tool=invocation.name, reason=str(error))
                return json.dumps({"error": f"Failed to execute tool {invocation.name}"})

            last_result = result
            LOGGER.debug("Tool result: %s", result[:500])
            if any(marker(result) for marker in self._free_form_markers):
                LOGGER.warning("Tool %s returned an error; letting the model retry", invocation.name)
                self._record("tool_error", iteration, tool=invocation.name, text=result[:200])
            else:
                self._record("tool_result", iteration, tool=invocation.name, chars=len(result))
            feedback = render_tool_feedback(invocation.name, result, per_tool)

        return last_result

    # ------------------------------------------------------------------ #
    # Table mode
    # ------------------------------------------------------------------ #
    def run_table(self, goal: Goal) -> int:
        chat = self._require_chat()
        store = self._require_store()
        schema = store.table_schema(goal.table_name or "")
        if not len(schema):
            raise ConfigurationError(f"Table {goal.table_name} does not exist or has no columns")
        LOGGER.debug("Target schema for %s: %s", schema.table, [column.name for column in schema])

        catalog = self._list_tools()
        catalog_bytes = _byte_length(catalog)
        task_prompt = goal.system_prompt or render_table_task_prompt(catalog, schema.describe(), goal.text)
        base_size = self._planner.base_context_size(catalog_bytes, chat.context_size())
        chat.create_context(base_size)
        per_tool = self._planner.truncate_length(
            base_size, catalog_bytes, _byte_length(task_prompt), goal.max_iterations
        )

        conversation = self.collect(goal, task_prompt, per_tool)
        pipeline = ExtractionPipeline.from_config(chat, store, self._config)
        rows = pipeline.run(schema, conversation)
        self._record("extraction", rows=rows, history_chars=len(conversation))

        if rows and schema.embedding_columns:
            self._embed(schema)
        return rows

    def collect(self, goal: Goal, task_prompt: str, per_tool: int) -> ConversationState:
        """Drive tool calls for up to ``goal.max_iterations`` turns."""
        chat = self._require_chat()
        tools = self._require_tools()
        conversation = ConversationState(self._conversation_capacity)
        guard = ErrorLoopGuard.from_config(self._config)

        for iteration in range(1, goal.max_iterations + 1):
            prompt = task_prompt if iteration == 1 else CONTINUE_NUDGE
            try:
                response = chat.respond(prompt)
            except LLMClientError as error:
                LOGGER.warning("Chat turn %d failed: %s", iteration, error)
                self._record("chat_failed", iteration, reason=str(error))
                continue
            if response is None:
                LOGGER.info("Model returned no text at iteration %d; ending collection", iteration)
                break
            LOGGER.debug("LLM response %d: %s", iteration, response[:500])
            self._record("response", iteration, text=response[:500])

            if DONE_SENTINEL in response:
                LOGGER.info("Model signalled completion at iteration %d", iteration)
                break

            invocation = parse(ParseMode.JSON, normalise_model_text(response), name_capacity=self._name_capacity)
            if invocation is None:
                LOGGER.debug("No tool call recognised at iteration %d", iteration)
                continue

            if has_template_markers(invocation.args):
                LOGGER.warning("Rejected template placeholders in args for %s", invocation.name)
                conversation.append(render_template_rejection(invocation.args))
                self._record("template_rejected", iteration, tool=invocation.name, args=invocation.args[:200])
                continue

            LOGGER.info("Calling tool %s", invocation.name)
            self._record("tool_call", iteration, tool=invocation.name, args=invocation.args)
            try:
                result = tools.call_tool(invocation.name, invocation.args)
            except ToolInvocationError as error:
                LOGGER.warning("%s", error)
                result = f"Tool {invocation.name} failed: {error.reason or error}"

            observed = guard.observe(result)
            if guard.should_abort():
                failure = RepeatedFailure(guard.last_signature, guard.count)
                LOGGER.warning("%s; proceeding with collected data", failure)
                self._record("aborted", iteration, tool=invocation.name, count=guard.count)
                break
            self._record("tool_result", iteration, tool=invocation.name, is_error=observed.is_error, chars=len(result))
            conversation.append(render_tool_feedback(invocation.name, result, per_tool))

        return conversation

    def _embed(self, schema: TargetSchema) -> None:
        if self._embedder is None:
            LOGGER.warning("No embedding capability configured; leaving %s embeddings empty", schema.table)
            return
        orchestrator = EmbeddingOrchestrator(self._require_chat(), self._embedder, self._require_store())
        report = orchestrator.run(schema)
        self._record(
            "embedding",
            mappings=report.mappings,
            updated=report.updated,
            indexes=[spec.column for spec in report.indexes],
            skipped=report.skipped,
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _require_chat(self) -> ChatClient:
        if self._chat is None:
            raise ConfigurationError("Chat capability is not available")
        return self._chat

    def _require_store(self) -> TabularStore:
        if self._store is None:
            raise ConfigurationError("Tabular storage is not configured")
        return self._store

    def _require_tools(self) -> ToolCatalog:
        if self._tools is None:
            raise ConfigurationError("Tool catalog is not available")
        return self._tools

    def _list_tools(self) -> str:
        tools = self._require_tools()
        try:
            catalog = tools.list_tools()
        except ToolInvocationError as error:
            raise ConfigurationError(f"Failed to list tools: {error}") from error
        if catalog is None:
            raise ConfigurationError("Failed to list tools")
        return catalog

    def _record(self, kind: str, iteration: int | None = None, **details: Any) -> None:
        if self._run_log is not None:
            self._run_log.record(kind, iteration, **details)

    def _write_run_log(self, *, outcome: Any = None, error: Exception | None = None) -> None:
        run_log, self._run_log = self._run_log, None
        if run_log is None or self._logs_root is None:
            return
        path = run_log.write(self._logs_root, outcome=outcome, error=error)
        if path is not None:
            LOGGER.debug("Run log written to %s", path)


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def run(
    goal: Optional[str],
    table_name: Optional[str] = None,
    max_iterations: Optional[int] = None,
    system_prompt: Optional[str] = None,
    *,
    runner: Optional[GoalRunner] = None,
    tools: Optional[ToolCatalog] = None,
    config: Mapping[str, Any] | None = None,
) -> str | int:
    """Run one goal; returns the final text, or the inserted row count in table mode."""
    if max_iterations is None:
        source = runner.config if runner is not None else config
        max_iterations = int(section(source, "agent")["max_iterations"])
    request = Goal.create(goal, table_name, max_iterations, system_prompt)
    if runner is None:
        if tools is None:
            raise ConfigurationError("Tool catalog is not available")
        configure_logging(config)
        runner = GoalRunner.from_config(config, tools=tools)
    return runner.run(request)


def agent_version() -> str:
    from . import __version__

    return __version__
