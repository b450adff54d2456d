"""
SQLite engine
"""
from typing import Sequence, Tuple

from apps.lightsearch.engines.base import DatabaseEngine, like_prefix


class SQLiteEngine(DatabaseEngine):
    """
    Prefix search with LIKE ... ESCAPE.

    SQLite's LIKE is case-insensitive for ASCII only; tokens and query
    terms are both lowercased by the tokenizer, which covers the rest.
    SQLite has no default escape character, hence the explicit ESCAPE.
    """

    vendor = 'sqlite'

    def prefix_clause(self, terms: Sequence[str]) -> Tuple[str, list]:
        clause = ' OR '.join(["token LIKE %s ESCAPE '\\'"] * len(terms))
        return clause, [like_prefix(term) for term in terms]
