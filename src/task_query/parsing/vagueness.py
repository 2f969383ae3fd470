"""Heuristic detection of open-ended ("what should I do") queries."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from task_query.vocabulary.stop_words import (
    GENERIC_QUERY_WORDS,
    INTERNAL_STOP_WORDS,
    contains_cjk,
    split_raw,
)

_MAX_CJK_WORD = 4


@dataclass(frozen=True, slots=True)
class VaguenessResult:
    is_vague: bool
    ratio: float
    generic_count: int
    specific_count: int
    token_count: int


class VagueQueryDetector:
    """Classifies a token list as vague or specific.

    ratio = generic tokens / all tokens. A query is vague when the ratio reaches
    `threshold` and no token carries specific content. Specific content is any
    non-generic token of two or more characters (or any CJK character) that is
    not purely numeric.
    """

    def __init__(
        self,
        *,
        threshold: float = 0.7,
        extra_generic_words: Iterable[str] = (),
    ) -> None:
        self.threshold = threshold
        self._generic = GENERIC_QUERY_WORDS | INTERNAL_STOP_WORDS | {
            word.lower() for word in extra_generic_words
        }

    def is_generic(self, token: str) -> bool:
        return token.lower() in self._generic

    def tokenize(self, text: str) -> list[str]:
        """Raw tokens before stop-word removal.

        CJK runs are segmented greedily against the generic vocabulary so that
        "我应该做什么" becomes "我", "应该", "做", "什么".
        """
        tokens: list[str] = []
        for word in split_raw(text):
            if contains_cjk(word):
                tokens.extend(self._segment_cjk(word))
            else:
                tokens.append(word)
        return tokens

    def _segment_cjk(self, run: str) -> list[str]:
        segments: list[str] = []
        pending = ""
        i = 0
        while i < len(run):
            for size in range(min(_MAX_CJK_WORD, len(run) - i), 0, -1):
                piece = run[i : i + size]
                if piece in self._generic:
                    if pending:
                        segments.append(pending)
                        pending = ""
                    segments.append(piece)
                    i += size
                    break
            else:
                pending += run[i]
                i += 1
        if pending:
            segments.append(pending)
        return segments

    def detect(self, tokens: list[str]) -> VaguenessResult:
        if not tokens:
            return VaguenessResult(
                is_vague=False, ratio=0.0, generic_count=0, specific_count=0, token_count=0
            )

        generic_count = 0
        specific_count = 0
        for token in tokens:
            if self.is_generic(token):
                generic_count += 1
            elif _is_content_token(token):
                specific_count += 1

        ratio = generic_count / len(tokens)
        return VaguenessResult(
            is_vague=ratio >= self.threshold and specific_count == 0,
            ratio=ratio,
            generic_count=generic_count,
            specific_count=specific_count,
            token_count=len(tokens),
        )


def _is_content_token(token: str) -> bool:
    if contains_cjk(token):
        return True
    return len(token) >= 2 and not token.isdigit()
