"""Structured per-run logs persisted as JSON for later debugging."""

from __future__ import annotations

import hashlib
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

__all__ = ["RunLog", "RunLogEntry", "load_run_log", "slugify"]

LOGGER = logging.getLogger(__name__)

_SLUG_PATTERN = re.compile(r"[^a-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "run", max_length: int = 60) -> str:
    """Filesystem-friendly slug; long values keep a hash suffix to stay unique."""
    slug = _HYPHEN_COLLAPSE.sub("-", _SLUG_PATTERN.sub("-", (value or "").strip().lower())).strip("-")
    if not slug:
        slug = fallback
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-")
    return f"{prefix}-{digest}"


@dataclass(slots=True)
class RunLog:
    """Events recorded by one goal run; written once the run finishes."""

    goal: str
    mode: str
    table: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    events: List[Dict[str, Any]] = field(default_factory=list)

    def record(self, kind: str, iteration: int | None = None, **details: Any) -> None:
        entry: Dict[str, Any] = {"kind": kind}
        if iteration is not None:
            entry["iteration"] = iteration
        entry.update(details)
        self.events.append(entry)

    def to_payload(self, *, outcome: Any = None, error: Exception | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": self.started_at.isoformat(),
            "goal": self.goal,
            "mode": self.mode,
            "table": self.table,
            "events": self.events,
        }
        if outcome is not None:
            payload["outcome"] = outcome
        if error is not None:
            payload["error"] = str(error)
        return payload

    def write(self, logs_root: Path, *, outcome: Any = None, error: Exception | None = None) -> Optional[Path]:
        """Persist under ``logs_root/runs``; filesystem errors are ignored."""
        runs_root = Path(logs_root) / "runs"
        try:
            runs_root.mkdir(parents=True, exist_ok=True)
        except OSError:
            return None

        parts = ["run", self.mode]
        if self.table:
            parts.append(slugify(self.table, fallback="table", max_length=40))
        parts.append(slugify(self.goal))
        parts.append(self.started_at.strftime("%Y%m%dT%H%M%S%fZ"))
        parts.append(uuid.uuid4().hex[:8])
        log_path = runs_root / ("__".join(parts) + ".json")
        try:
            with log_path.open("w", encoding="utf-8") as handle:
                json.dump(self.to_payload(outcome=outcome, error=error), handle, indent=2, ensure_ascii=False, default=str)
        except OSError as os_error:
            LOGGER.debug("Failed to write run log %s: %s", log_path, os_error)
            return None
        return log_path


@dataclass(slots=True)
class RunLogEntry:
    """In-memory view of a stored run log."""

    path: Path
    payload: Mapping[str, Any]

    @property
    def mode(self) -> str:
        return str(self.payload.get("mode") or "")

    @property
    def events(self) -> List[Mapping[str, Any]]:
        value = self.payload.get("events")
        return list(value) if isinstance(value, list) else []

    def events_of(self, kind: str) -> List[Mapping[str, Any]]:
        return [event for event in self.events if event.get("kind") == kind]


def load_run_log(path: Path | str) -> RunLogEntry:
    log_path = Path(path).resolve()
    with log_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return RunLogEntry(path=log_path, payload=payload)
