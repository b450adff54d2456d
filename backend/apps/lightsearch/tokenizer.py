"""
Text normalization and tokenization

Lowercases text, turns every run of non letter/digit characters into a
separator, splits on whitespace and filters short terms and stopwords.
"""
import re
from typing import Any, Iterable, List, Optional

from apps.lightsearch.conf import DEFAULT_STOPWORDS

# Anything that is not a Unicode letter or digit (underscore counts as punctuation)
_SEPARATORS = re.compile(r'[\W_]+')


def _as_text(value: Any) -> str:
    """Stringify a scalar the way it should be indexed."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return '1' if value else ''
    return str(value)


class Tokenizer:
    """
    Splits text into indexable terms.

    Args:
        min_token_length: Terms shorter than this (in characters) are dropped
        stopwords: Terms to drop; None uses the built-in English list,
            an empty collection disables filtering
    """

    def __init__(self, min_token_length: int = 2, stopwords: Optional[Iterable[str]] = None):
        self.min_token_length = min_token_length
        self.stopwords = DEFAULT_STOPWORDS if stopwords is None else frozenset(stopwords)

    @classmethod
    def from_settings(cls, index_settings) -> 'Tokenizer':
        return cls(
            min_token_length=index_settings.min_token_length,
            stopwords=index_settings.stopwords,
        )

    def tokenize(self, text: Any) -> List[str]:
        """
        Normalize text and split it into terms, in order of appearance.

        Duplicates are kept; use extract_tokens for a unique term list.
        """
        normalized = _SEPARATORS.sub(' ', _as_text(text).lower())
        return [
            token for token in normalized.split()
            if len(token) >= self.min_token_length and token not in self.stopwords
        ]

    def extract_tokens(self, value: Any) -> List[str]:
        """
        Recursively tokenize every leaf of a nested structure.

        Returns unique terms in first-seen order.
        """
        seen = {}
        for token in self._walk(value):
            seen.setdefault(token, None)
        return list(seen)

    def _walk(self, value: Any):
        if isinstance(value, dict):
            for item in value.values():
                yield from self._walk(item)
        elif isinstance(value, (list, tuple, set, frozenset)):
            for item in value:
                yield from self._walk(item)
        else:
            yield from self.tokenize(value)
