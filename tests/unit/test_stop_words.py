from task_query.vocabulary.stop_words import (
    build_stop_words,
    deduplicate_keywords,
    filter_stop_words,
    split_words,
)


def test_split_words_breaks_cjk_runs_into_bigrams_and_characters() -> None:
    assert split_words("修复错误") == ["修复", "修", "复", "错误", "错", "误"]


def test_split_words_keeps_latin_words_inside_mixed_text() -> None:
    words = split_words("Fix API中文 bug!")
    assert words[0] == "fix"
    assert "api" in words
    assert "中文" in words
    assert words[-1] == "bug"


def test_filter_stop_words_drops_single_latin_characters_but_keeps_cjk() -> None:
    stop_words = build_stop_words()
    assert filter_stop_words(["the", "x", "修", "deploy"], stop_words) == ["修", "deploy"]


def test_user_stop_words_are_merged_with_internal_list() -> None:
    stop_words = build_stop_words(["  Project ", ""])
    assert "project" in stop_words
    assert "the" in stop_words


def test_deduplicate_keywords_only_swallows_cjk_substrings() -> None:
    keywords = ["修复", "修", "fix", "prefix", "fix"]
    assert deduplicate_keywords(keywords) == ["修复", "fix", "prefix"]
