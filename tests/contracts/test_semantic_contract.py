import json
import threading
from datetime import date
from typing import Any

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from task_query.agent.errors import QueryCancelledError, SemanticParseError
from task_query.agent.semantic_parser import SemanticQueryParser, build_parser_prompt
from task_query.config import QueryConfig
from task_query.types import DateRange

TODAY = date(2025, 3, 12)

TWO_LANGUAGES = QueryConfig(
    parser={"languages": ["English", "Chinese"], "expansions_per_language": 3}
)


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "coreKeywords": ["fix", "bug"],
        "keywordExpansions": [
            {"core": "fix", "language": "English", "variants": ["fix", "repair", "resolve"]},
            {"core": "fix", "language": "Chinese", "variants": ["修复", "修理", "解决"]},
            {"core": "bug", "language": "English", "variants": ["bug", "defect", "error"]},
            {"core": "bug", "language": "Chinese", "variants": ["错误", "缺陷", "故障"]},
        ],
        "priority": [],
        "status": [],
        "timeContext": None,
        "dueDate": None,
        "isVague": False,
        "tags": [],
        "folder": None,
    }
    payload.update(overrides)
    return payload


def _parser(content: str, config: QueryConfig = TWO_LANGUAGES) -> SemanticQueryParser:
    return SemanticQueryParser(llm=FakeListChatModel(responses=[content]), config=config)


class _RecordingChain:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def invoke(self, variables: dict[str, Any]) -> str:
        self.calls.append(variables)
        return json.dumps(_payload())


def test_prompt_names_every_contract_field() -> None:
    parser = _parser("{}")
    messages = build_parser_prompt().format_messages(**parser.prompt_variables("fix bug"))
    system = messages[0].content
    for key in ("coreKeywords", "keywordExpansions", "timeContext", "dueDate", "isVague"):
        assert key in system
    assert "English, Chinese" in system
    assert "Target variants per core keyword: 6" in system
    assert messages[1].content == "fix bug"


def test_expansions_cover_every_language_for_every_keyword() -> None:
    parsed = _parser(json.dumps(_payload())).parse("fix bug", today=TODAY)
    assert parsed.source == "semantic"
    assert parsed.core_keywords == ["fix", "bug"]
    assert len(parsed.expanded_keywords) == len(parsed.core_keywords) * 3 * 2
    for core in parsed.core_keywords:
        languages = {item.language for item in parsed.expanded_keywords if item.core == core}
        assert languages == {"English", "Chinese"}


def test_extra_variants_are_truncated_per_language() -> None:
    payload = _payload(
        coreKeywords=["fix"],
        keywordExpansions=[
            {"core": "fix", "language": "English", "variants": ["fix", "repair", "mend", "patch"]},
            {"core": "fix", "language": "Chinese", "variants": ["修复", "修理", "解决", "改正"]},
        ],
    )
    parsed = _parser(json.dumps(payload)).parse("fix", today=TODAY)
    assert [item.text for item in parsed.expanded_keywords] == [
        "fix",
        "repair",
        "mend",
        "修复",
        "修理",
        "解决",
    ]


@pytest.mark.parametrize(
    "content",
    [
        "I think you should fix the bug",
        json.dumps(_payload(isVague="no")),
        json.dumps(_payload(timeContext="someday")),
        json.dumps(_payload(priority=[9])),
        json.dumps(_payload(status=["sleeping"])),
        json.dumps(
            _payload(
                keywordExpansions=[
                    {"core": "fix", "language": "English", "variants": ["fix it", "repair"]},
                    {"core": "fix", "language": "Chinese", "variants": ["修复"]},
                    {"core": "bug", "language": "English", "variants": ["bug"]},
                    {"core": "bug", "language": "Chinese", "variants": ["错误"]},
                ]
            )
        ),
        json.dumps(
            _payload(
                keywordExpansions=[
                    {"core": "fix", "language": "English", "variants": ["fix"]},
                    {"core": "bug", "language": "English", "variants": ["bug"]},
                ]
            )
        ),
    ],
)
def test_untrusted_responses_are_rejected_whole(content: str) -> None:
    with pytest.raises(SemanticParseError) as excinfo:
        _parser(content).parse("fix bug", today=TODAY)
    assert excinfo.value.structured.category == "malformed_response"


def test_code_fenced_json_is_accepted() -> None:
    content = "```json\n" + json.dumps(_payload()) + "\n```"
    assert _parser(content).parse("fix bug", today=TODAY).core_keywords == ["fix", "bug"]


def test_recognized_properties_never_stay_keywords() -> None:
    payload = _payload(
        coreKeywords=["fix", "high"],
        keywordExpansions=[
            {"core": "fix", "language": "English", "variants": ["fix", "repair", "high"]},
            {"core": "fix", "language": "Chinese", "variants": ["修复"]},
            {"core": "high", "language": "English", "variants": ["high"]},
            {"core": "high", "language": "Chinese", "variants": ["高"]},
        ],
        priority=[1],
    )
    parsed = _parser(json.dumps(payload)).parse("fix high priority", today=TODAY)
    assert parsed.priority == [1]
    assert parsed.core_keywords == ["fix"]
    assert "high" not in parsed.keywords
    assert not set(parsed.keywords) & set(parsed.consumed_terms)


def test_time_context_is_converted_locally() -> None:
    vague = _payload(coreKeywords=[], keywordExpansions=[], timeContext="today", isVague=True)
    parsed = _parser(json.dumps(vague)).parse("what should I do today", today=TODAY)
    assert parsed.is_vague
    assert parsed.due_date_range == DateRange("<=", TODAY)
    assert parsed.due_date == []

    specific = _payload(timeContext="next week")
    parsed = _parser(json.dumps(specific)).parse("fix bug next week", today=TODAY)
    assert parsed.due_date == ["next-week"]
    assert parsed.due_date_range is None


def test_syntax_overrides_model_properties() -> None:
    payload = _payload(priority=[3], status=["completed"], dueDate="2025-04-01")
    parsed = _parser(json.dumps(payload)).parse("p1 s:open d:today fix bug", today=TODAY)
    assert parsed.priority == [1]
    assert parsed.status == ["open"]
    assert parsed.due_date == ["today"]


def test_property_only_query_skips_the_model() -> None:
    chain = _RecordingChain()
    parser = SemanticQueryParser(llm=None, config=TWO_LANGUAGES, chain=chain)
    parsed = parser.parse("p1 overdue #work", today=TODAY)
    assert chain.calls == []
    assert parsed.source == "syntax"
    assert parsed.priority == [1]
    assert parsed.due_date == ["overdue"]
    assert parsed.tags == ["work"]


def test_cancelled_parse_raises_before_calling_model() -> None:
    chain = _RecordingChain()
    parser = SemanticQueryParser(llm=None, config=TWO_LANGUAGES, chain=chain)
    event = threading.Event()
    event.set()
    with pytest.raises(QueryCancelledError):
        parser.parse("fix bug", today=TODAY, cancel_event=event)
    assert chain.calls == []


def test_model_folder_and_date_never_stay_keywords() -> None:
    payload = _payload(
        coreKeywords=["meeting", "projects", "2025-04-01"],
        keywordExpansions=[
            {"core": "meeting", "language": "English", "variants": ["meeting", "projects"]},
            {"core": "meeting", "language": "Chinese", "variants": ["会议"]},
            {"core": "projects", "language": "English", "variants": ["projects"]},
            {"core": "projects", "language": "Chinese", "variants": ["项目"]},
            {"core": "2025-04-01", "language": "English", "variants": ["2025-04-01"]},
            {"core": "2025-04-01", "language": "Chinese", "variants": ["2025-04-01"]},
        ],
        folder="Projects",
        dueDate="2025-04-01",
    )
    parsed = _parser(json.dumps(payload)).parse("meeting projects 2025-04-01", today=TODAY)
    assert parsed.folder == "Projects"
    assert parsed.due_date == ["2025-04-01"]
    assert parsed.core_keywords == ["meeting"]
    assert "projects" not in parsed.keywords
    assert "2025-04-01" not in parsed.keywords
