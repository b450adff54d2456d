"""
MySQL / MariaDB engine
"""
from typing import Sequence, Tuple

from apps.lightsearch.engines.base import DatabaseEngine, like_prefix


class MySQLEngine(DatabaseEngine):
    """
    Prefix search with LIKE.

    MySQL's default collations are case-insensitive, so LIKE 'term%'
    already matches regardless of case. Also the fallback engine for
    databases without a dedicated engine.
    """

    vendor = 'mysql'

    def prefix_clause(self, terms: Sequence[str]) -> Tuple[str, list]:
        clause = ' OR '.join(['token LIKE %s'] * len(terms))
        return clause, [like_prefix(term) for term in terms]
