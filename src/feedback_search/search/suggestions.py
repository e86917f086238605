"""
Autocomplete phrases derived from lexical matches.
"""

from __future__ import annotations

from .lexical import LexicalSearch

MIN_PARTIAL_CHARS = 2


class SuggestionGenerator:
    """Suggest phrases that extend a partial query by one word."""

    def __init__(self, lexical: LexicalSearch) -> None:
        self.lexical = lexical

    def suggest(self, partial_query: str, limit: int = 5) -> list[str]:
        partial = partial_query.strip().lower()
        if len(partial) < MIN_PARTIAL_CHARS or limit < 1:
            return []

        query_words = partial.split()
        window = len(query_words) + 1
        suggestions: dict[str, None] = {}

        for item in self.lexical.match_by_text(partial, limit * 2):
            words = item.text.lower().split()
            for start in range(len(words) - window + 1):
                phrase = " ".join(words[start : start + window])
                if phrase.startswith(partial) and len(phrase) > len(partial):
                    suggestions.setdefault(phrase, None)
                    if len(suggestions) >= limit:
                        return list(suggestions)

        return list(suggestions)
