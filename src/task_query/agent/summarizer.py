"""Stage B: LLM summary and recommendations over ranked tasks."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from langchain_core.prompts import ChatPromptTemplate

from task_query.agent.errors import (
    QueryCancelledError,
    SummaryError,
    classify_llm_error,
)
from task_query.agent.semantic_parser import message_text
from task_query.config import QueryConfig
from task_query.types import ParsedQuery, ScoredTask

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """
You are a task planning assistant. The user asked: "{query}".
Today is {today}.

Below are the user's tasks that matched, already ranked by relevance, due date
and priority. Recommend what to work on and why.

Rules:
1) Only talk about the tasks listed below.
2) Refer to a task by its reference, e.g. [TASK_3]. Never invent references.
3) Recommend at most {max_recommendations} tasks, most important first.
4) Answer in the language of the user's query. Be concise.

Tasks:
{tasks}
""".strip()

_TASK_REFERENCE = re.compile(r"\[TASK_(\d+)\]")


@dataclass(slots=True)
class Summary:
    text: str
    recommended_task_ids: list[str] = field(default_factory=list)


class TaskSummarizer:
    """Asks the chat model to summarize ranked tasks.

    Tasks are listed as `[TASK_n]`; references found in the answer map back to
    task ids and become the recommendations.
    """

    def __init__(
        self,
        *,
        llm: Any,
        config: QueryConfig | None = None,
        model_label: str = "",
        chain: Any | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or QueryConfig()
        self.model_label = model_label or str(getattr(llm, "model_name", "") or "llm")
        if chain is not None:
            self.chain = chain
        else:
            prompt = ChatPromptTemplate.from_messages(
                [("system", _SYSTEM_PROMPT), ("human", "{query}")]
            )
            self.chain = prompt | self.llm

    def summarize(
        self,
        query: ParsedQuery,
        tasks: Sequence[ScoredTask],
        *,
        today: date | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Summary:
        """Raises SummaryError on any model failure and QueryCancelledError on cancel."""
        today = today or date.today()
        if cancel_event is not None and cancel_event.is_set():
            raise QueryCancelledError()
        try:
            result = self.chain.invoke(
                {
                    "query": query.original_query,
                    "today": today.isoformat(),
                    "max_recommendations": self.config.limits.max_recommendations,
                    "tasks": format_task_list(tasks, self.config),
                }
            )
        except Exception as exc:
            structured = classify_llm_error(exc, model=self.model_label, operation="analysis")
            raise SummaryError(structured) from exc
        if cancel_event is not None and cancel_event.is_set():
            raise QueryCancelledError()

        text = message_text(result).strip()
        recommended = extract_recommendations(
            text, tasks, limit=self.config.limits.max_recommendations
        )
        logger.info(f"Summary produced with {len(recommended)} recommended tasks")
        return Summary(text=text, recommended_task_ids=recommended)


def format_task_list(tasks: Sequence[ScoredTask], config: QueryConfig) -> str:
    lines: list[str] = []
    for index, item in enumerate(tasks, start=1):
        task = item.task
        category = config.status_categories.get(task.status_category)
        details = [f"status: {category.display_name if category else task.status_category}"]
        if task.priority is not None:
            details.append(f"priority: P{task.priority}")
        if task.due_date is not None:
            details.append(f"due: {task.due_date.isoformat()}")
        if task.tags:
            details.append("tags: " + " ".join(f"#{tag}" for tag in task.tags))
        lines.append(f"[TASK_{index}] {task.text} ({', '.join(details)})")
    return "\n".join(lines)


def extract_recommendations(
    text: str, tasks: Sequence[ScoredTask], *, limit: int
) -> list[str]:
    ids: list[str] = []
    for match in _TASK_REFERENCE.finditer(text):
        index = int(match.group(1)) - 1
        if 0 <= index < len(tasks):
            task_id = tasks[index].task.id
            if task_id not in ids:
                ids.append(task_id)
        if len(ids) >= limit:
            break
    return ids
