"""Stop words, generic query words and CJK-aware tokenization."""

from __future__ import annotations

import re
from collections.abc import Iterable

# Question words, generic verbs, modals and generic nouns. A query made only of
# these is an open-ended request ("what should I do") rather than a search.
GENERIC_QUERY_WORDS: frozenset[str] = frozenset(
    {
        # English
        "what", "when", "where", "which", "how", "why", "who", "whom", "whose",
        "do", "does", "did", "doing", "done", "make", "makes", "made", "making",
        "work", "works", "worked", "working", "get", "gets", "got", "getting",
        "go", "goes", "went", "going", "come", "comes", "came", "coming",
        "take", "takes", "took", "taking", "give", "gives", "gave", "giving",
        "should", "could", "would", "might", "must", "can", "may", "shall", "will",
        "need", "needs", "needed", "needing", "have", "has", "had", "having",
        "want", "wants", "wanted", "wanting", "focus", "next", "now", "start",
        "task", "tasks", "item", "items", "thing", "things", "job", "jobs",
        "stuff", "matter", "matters", "issue", "issues", "problem", "problems",
        "show", "list", "find", "tell", "anything", "something",
        # Chinese
        "什么", "怎么", "哪里", "哪个", "为什么", "怎样", "谁", "哪", "何",
        "做", "可以", "能", "应该", "需要", "有", "要", "干", "搞", "弄", "办",
        "处理", "任务", "事情", "东西", "工作", "活", "问题", "事", "事儿",
        # Swedish
        "vad", "när", "var", "vilken", "vilka", "vilket", "hur", "varför", "vem",
        "vems", "göra", "gör", "gjorde", "gjort", "arbeta", "arbetar", "arbetade",
        "ta", "tar", "tog", "tagit", "kan", "kunde", "kunnat", "ska", "skulle",
        "behöver", "behövde", "behövt", "har", "hade", "haft", "vill", "ville",
        "uppgift", "uppgifter", "sak", "saker", "arbete", "jobb", "ärende",
        # German
        "was", "wann", "wo", "welche", "welcher", "welches", "wie", "warum", "wer",
        "machen", "macht", "machte", "gemacht", "tun", "tat", "getan", "arbeiten",
        "sollen", "sollte", "können", "konnte", "müssen", "musste",
        "aufgabe", "aufgaben", "sache", "sachen", "arbeit", "ding", "dinge",
        # Spanish
        "qué", "cuándo", "dónde", "cuál", "cuáles", "cómo", "quién", "hacer",
        "hace", "hizo", "hecho", "trabajar", "trabaja", "deber", "debe", "debería",
        "poder", "puede", "podría", "necesitar", "necesita", "tarea", "tareas",
        "cosa", "cosas", "trabajo", "asunto", "asuntos",
        # French
        "quoi", "que", "quel", "quelle", "quels", "quelles", "quand", "où",
        "comment", "pourquoi", "qui", "faire", "fait", "fais", "font",
        "travailler", "travaille", "devoir", "doit", "devrait", "pouvoir", "peut",
        "pourrait", "faut", "tâche", "tâches", "chose", "choses", "travail",
        # Japanese
        "なに", "なん", "いつ", "どこ", "どれ", "どう", "なぜ", "だれ", "する",
        "やる", "できる", "こと", "もの", "タスク", "仕事",
    }
)

INTERNAL_STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "for", "of", "with", "by", "from",
        "to", "in", "on", "at", "as", "is", "was", "are", "were", "be", "been",
        "i", "me", "my", "we", "our", "you", "your", "it", "its", "this", "that",
        "there", "any", "all", "some", "please",
        "how", "what", "when", "where", "why", "which", "who", "whom", "whose",
        "do", "does", "did", "can", "could", "should", "would", "will",
        "have", "has", "had",
        "我", "的", "了", "吗", "呢", "啊", "吧", "如何", "怎么", "怎样", "什么",
        "哪些", "哪个", "哪里", "为什么",
    }
)

# Han (incl. extensions A/B and compatibility), hiragana, katakana.
_CJK_PATTERN = re.compile(
    "[一-鿿㐀-䶿\U00020000-\U0002a6df぀-ゟ゠-ヿ豈-﫿]"
)
_SPLIT_PATTERN = re.compile(r"[\s,;:!?.()\[\]{}\"'“”‘’<>/\\|~`@$%^&*+=，。！？；：、（）]+")
_LATIN_RUN = re.compile(r"[A-Za-z0-9_]+")


def contains_cjk(text: str) -> bool:
    return bool(_CJK_PATTERN.search(text))


def is_generic_word(word: str) -> bool:
    return word.lower() in GENERIC_QUERY_WORDS


def build_stop_words(user_stop_words: Iterable[str] = ()) -> frozenset[str]:
    """Merge the always-on internal list with user configured stop words."""
    merged = set(INTERNAL_STOP_WORDS)
    merged.update(word.strip().lower() for word in user_stop_words if word.strip())
    return frozenset(merged)


def split_raw(text: str) -> list[str]:
    """Lowercase whitespace/punctuation split; CJK runs stay whole."""
    chunks = (chunk.strip("-_#") for chunk in _SPLIT_PATTERN.split(text.lower()))
    return [chunk for chunk in chunks if chunk]


def split_words(text: str) -> list[str]:
    """Split text into keyword candidates, keeping order and duplicates.

    CJK runs are split into two-character words plus the single characters,
    so "修复错误" yields "修复", "修", "复", "错误", "错", "误".
    """
    words: list[str] = []
    for chunk in split_raw(text):
        if contains_cjk(chunk):
            words.extend(_split_cjk(chunk))
        else:
            words.append(chunk)
    return words


def _split_cjk(chunk: str) -> list[str]:
    words: list[str] = []
    i = 0
    while i < len(chunk):
        char = chunk[i]
        if contains_cjk(char):
            if i + 1 < len(chunk) and contains_cjk(chunk[i + 1]):
                words.extend([chunk[i : i + 2], char, chunk[i + 1]])
                i += 2
            else:
                words.append(char)
                i += 1
            continue
        latin = _LATIN_RUN.match(chunk, i)
        if latin:
            words.append(latin.group(0))
            i = latin.end()
        else:
            i += 1
    return words


def filter_stop_words(words: Iterable[str], stop_words: frozenset[str]) -> list[str]:
    """Drop stop words and single non-CJK characters."""
    kept: list[str] = []
    for word in words:
        lowered = word.lower()
        if lowered in stop_words:
            continue
        if len(lowered) < 2 and not contains_cjk(lowered):
            continue
        kept.append(lowered)
    return kept


def deduplicate_keywords(keywords: Iterable[str]) -> list[str]:
    """Remove duplicates and CJK substrings of longer CJK keywords.

    A latin keyword contained in a longer one ("fix" in "prefix") is kept.
    """
    unique: list[str] = []
    for keyword in keywords:
        if keyword and keyword not in unique:
            unique.append(keyword)

    result: list[str] = []
    for keyword in unique:
        swallowed = any(
            other != keyword
            and keyword in other
            and contains_cjk(keyword)
            and contains_cjk(other)
            for other in unique
        )
        if not swallowed:
            result.append(keyword)
    return result
