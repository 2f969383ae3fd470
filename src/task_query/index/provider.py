"""Task index provider contract and an in-memory implementation."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol

from task_query.config import QueryConfig
from task_query.types import Task

logger = logging.getLogger(__name__)

_TAG_SEPARATOR = re.compile(r"[\s,]+")


@dataclass(frozen=True, slots=True)
class TaskSnapshot:
    """Read-only view of the index at one point in time.

    A refresh always produces a new snapshot; queries holding an older one keep
    reading it unchanged.
    """

    version: int
    tasks: tuple[Task, ...]

    def __len__(self) -> int:
        return len(self.tasks)


class TaskIndexProvider(Protocol):
    """Minimal contract the query pipeline needs from a task source."""

    def is_ready(self) -> bool:
        """False while the source is still indexing."""

    def snapshot(self) -> TaskSnapshot:
        """Current snapshot. Only meaningful when `is_ready()` is true."""


class InMemoryTaskIndex:
    """Task index fed with raw records, used by the API and tests."""

    def __init__(self, config: QueryConfig | None = None, *, ready: bool = True) -> None:
        self.config = config or QueryConfig()
        self._ready = ready
        self._snapshot = TaskSnapshot(version=0, tasks=())

    def is_ready(self) -> bool:
        return self._ready

    def snapshot(self) -> TaskSnapshot:
        return self._snapshot

    def mark_indexing(self) -> None:
        self._ready = False

    def load(self, records: Iterable[Mapping[str, Any]]) -> TaskSnapshot:
        """Replace the index contents wholesale and return the new snapshot."""
        tasks = tuple(
            build_task(record, self.config, position=i) for i, record in enumerate(records)
        )
        self._snapshot = TaskSnapshot(version=self._snapshot.version + 1, tasks=tasks)
        self._ready = True
        logger.info(f"Loaded {len(tasks)} tasks into snapshot v{self._snapshot.version}")
        return self._snapshot


def build_task(record: Mapping[str, Any], config: QueryConfig, *, position: int = 0) -> Task:
    """Convert one raw task record into a `Task`.

    Unparseable dates and out-of-range priorities become None rather than
    failing the whole load.
    """
    source_path = str(record.get("source_path") or "")
    source_line = _parse_line(record.get("source_line"))
    task_id = record.get("id")
    if not task_id:
        task_id = f"{source_path}:{source_line}" if source_path else f"task-{position}"

    symbol = record.get("status")
    if symbol is None:
        symbol = record.get("status_symbol", " ")

    return Task(
        id=str(task_id),
        text=str(record.get("text") or ""),
        status_category=config.categorize_symbol(symbol),
        status_symbol=str(symbol),
        priority=_parse_priority(record.get("priority")),
        due_date=_parse_date(record.get("due_date")),
        created_date=_parse_date(record.get("created_date")),
        tags=_parse_tags(record.get("tags")),
        source_path=source_path,
        source_line=source_line,
    )


def _parse_priority(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        level = int(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring invalid priority value: {value!r}")
        return None
    return level if 1 <= level <= 4 else None


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.debug(f"Ignoring invalid date value: {value!r}")
        return None


def _parse_line(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        line = int(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring invalid source line: {value!r}")
        return 0
    return max(line, 0)


def _parse_tags(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = _TAG_SEPARATOR.split(value)
    tags: list[str] = []
    for tag in value or ():
        cleaned = str(tag).strip().lstrip("#").lower()
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tuple(tags)
