"""Multilingual property vocabulary (English, Chinese, Swedish)."""

from __future__ import annotations

from task_query.config import OTHER_CATEGORY, QueryConfig

PRIORITY_TERMS: dict[str, tuple[str, ...]] = {
    "general": ("priority", "urgent", "优先级", "优先", "紧急", "prioritet", "viktig", "brådskande"),
    "high": ("high", "highest", "top", "高", "最高", "hög", "högst", "kritisk"),
    "medium": ("medium", "normal", "中", "中等", "普通", "medel"),
    "low": ("low", "lowest", "minor", "低", "次要", "låg", "mindre"),
}

# Order matters: earlier groups win when several match the same query.
DUE_DATE_TERMS: dict[str, tuple[str, ...]] = {
    "overdue": ("overdue", "over due", "past due", "late", "过期", "逾期", "延迟", "försenad"),
    "future": ("future", "upcoming", "later", "未来", "将来", "以后", "framtida", "kommande"),
    "today": ("today", "今天", "今日", "idag"),
    "tomorrow": ("tomorrow", "明天", "imorgon"),
    "yesterday": ("yesterday", "昨天", "igår"),
    "this_week": ("this week", "本周", "这周", "denna vecka"),
    "next_week": ("next week", "下周", "nästa vecka"),
    "last_week": ("last week", "上周", "förra veckan"),
    "this_month": ("this month", "本月", "这个月", "denna månad"),
    "next_month": ("next month", "下个月", "下月", "nästa månad"),
    "last_month": ("last month", "上个月", "上月", "förra månaden"),
    "this_year": ("this year", "今年", "i år"),
    "next_year": ("next year", "明年", "nästa år"),
    "last_year": ("last year", "去年", "förra året"),
    "general": ("due", "deadline", "截止日期", "截止", "到期", "期限", "förfallodatum"),
}

# Maps a due-date term group to the canonical time-context name.
TIME_CONTEXT_NAMES: dict[str, str] = {
    "overdue": "overdue",
    "future": "future",
    "today": "today",
    "tomorrow": "tomorrow",
    "yesterday": "yesterday",
    "this_week": "this-week",
    "next_week": "next-week",
    "last_week": "last-week",
    "this_month": "this-month",
    "next_month": "next-month",
    "last_month": "last-month",
    "this_year": "this-year",
    "next_year": "next-year",
    "last_year": "last-year",
}

STATUS_TERMS: dict[str, tuple[str, ...]] = {
    "open": (
        "open", "todo", "to do", "incomplete", "unstarted", "not started",
        "未完成", "待办", "待处理", "新建", "öppen", "väntande", "att göra",
    ),
    "in_progress": (
        "in progress", "in-progress", "wip", "ongoing", "active", "doing",
        "进行中", "正在做", "处理中", "pågående", "aktiv",
    ),
    "completed": (
        "done", "completed", "finished", "closed", "resolved",
        "完成", "已完成", "结束", "已结束", "klar", "färdig", "slutförd", "stängd",
    ),
    "cancelled": (
        "cancelled", "canceled", "abandoned", "dropped", "discarded",
        "取消", "已取消", "放弃", "废弃", "avbruten", "inställd",
    ),
}

NO_DATE_TERMS: tuple[str, ...] = ("no date", "no due date", "without date", "没有日期", "inget datum")
NO_PRIORITY_TERMS: tuple[str, ...] = ("no priority", "without priority", "没有优先级", "ingen prioritet")


def status_terms(config: QueryConfig) -> dict[str, list[str]]:
    """Natural-language words per configured status category.

    Built-in terms apply to the matching built-in keys; every category
    (custom ones included) also answers to its key, display name and aliases.
    The catch-all category has no natural-language words.
    """
    terms: dict[str, list[str]] = {}
    for key, category in config.status_categories.items():
        if key == OTHER_CATEGORY:
            continue
        words: list[str] = list(STATUS_TERMS.get(key, ()))
        words.append(key.replace("_", " "))
        if category.display_name:
            words.append(category.display_name.lower())
        words.extend(alias.lower() for alias in category.aliases)
        unique: list[str] = []
        for word in words:
            if word and word not in unique:
                unique.append(word)
        terms[key] = unique
    return terms


def resolve_status_value(value: str, config: QueryConfig) -> str | None:
    """Map a status token (key, alias, display name or symbol) to a category key."""
    lowered = value.strip().lower()
    if not lowered:
        return None
    for key in config.status_categories:
        if lowered == key.lower() or lowered == key.replace("_", "").lower():
            return key
    for key, words in status_terms(config).items():
        if lowered in words or lowered.replace("-", " ") in words:
            return key
    for key, category in config.status_categories.items():
        if value.strip() and value.strip() in category.symbols:
            return key
    return None
