"""
PostgreSQL engine

Prefix search with ILIKE. When the pg_trgm extension is installed, fuzzy
search ranks records by trigram similarity instead.
"""
import logging
from typing import Sequence, Tuple

from django.db import DatabaseError, transaction

from apps.lightsearch.capabilities import (
    has_similarity_extension,
    invalidate_similarity_cache,
    is_missing_similarity,
)
from apps.lightsearch.engines.base import DatabaseEngine, FuzzyResult, like_prefix
from apps.lightsearch.exceptions import SimilarityUnavailable

logger = logging.getLogger(__name__)


class PostgreSQLEngine(DatabaseEngine):
    """
    PostgreSQL search engine.

    Whether pg_trgm is usable is read from the shared capability cache on
    every call, so all engines and workers see the same flag. A failed
    similarity query clears that flag; the next call probes again.
    """

    vendor = 'postgresql'

    def prefix_clause(self, terms: Sequence[str]) -> Tuple[str, list]:
        clause = ' OR '.join(['token ILIKE %s'] * len(terms))
        return clause, [like_prefix(term) for term in terms]

    # ── Capability ──────────────────────────────────────────────

    def supports_fuzzy_search(self) -> bool:
        return has_similarity_extension(self.using)

    def refresh_capability(self) -> bool:
        """Drop cached state and check pg_trgm again."""
        invalidate_similarity_cache(self.using)
        return self.supports_fuzzy_search()

    def _downgrade(self, error: Exception) -> None:
        logger.warning(
            f"similarity() failed on '{self.using}', falling back to prefix search: {error}"
        )
        invalidate_similarity_cache(self.using)

    def _fetch_similarity(self, sql: str, params: list) -> list:
        """
        Run a similarity query inside a savepoint.

        Raises:
            SimilarityUnavailable: similarity() is missing on this database
            DatabaseError: any other failure, unchanged
        """
        try:
            with transaction.atomic(using=self.using):
                return self._fetch_all(sql, params)
        except DatabaseError as e:
            if is_missing_similarity(e):
                raise SimilarityUnavailable(self.using, str(e)) from e
            raise

    # ── Fuzzy search ────────────────────────────────────────────

    def _score_expression(self, terms: Sequence[str], threshold: float) -> Tuple[str, list]:
        # Best similarity per term across the record's tokens, summed over
        # terms so records matching several terms outrank a single close hit.
        cases = []
        params = []
        for term in terms:
            cases.append('MAX(CASE WHEN similarity(token, %s) > %s THEN similarity(token, %s) ELSE 0 END)')
            params.extend([term, threshold, term])
        return '(' + ' + '.join(cases) + ')', params

    def _similarity_clause(self, terms: Sequence[str], threshold: float) -> Tuple[str, list]:
        clause = ' OR '.join(['similarity(token, %s) > %s'] * len(terms))
        params = []
        for term in terms:
            params.extend([term, threshold])
        return clause, params

    def fuzzy_search(
        self,
        terms: Sequence[str],
        model: str,
        threshold: float = 0.3,
        limit: int = 10,
        offset: int = 0,
    ) -> FuzzyResult:
        """
        Rank records by trigram similarity to the terms.

        Total matches come back in the same query via COUNT(*) OVER ().
        Falls back to prefix search (total=None) without pg_trgm.
        """
        if not terms:
            return FuzzyResult(ids=[], total=0)

        if not self.supports_fuzzy_search():
            return FuzzyResult(ids=self.search(terms, model, limit, offset), total=None)

        score_sql, score_params = self._score_expression(terms, threshold)
        where_sql, where_params = self._similarity_clause(terms, threshold)
        sql = (
            "SELECT record_id, total_score, total_count FROM ("
            "SELECT record_id, total_score, COUNT(*) OVER () AS total_count FROM ("
            f"SELECT record_id, {score_sql} AS total_score FROM {self.quoted_table} "
            f"WHERE model = %s AND ({where_sql}) "
            "GROUP BY record_id "
            f"HAVING {score_sql} > 0"
            ") AS scored_results"
            ") AS fuzzy_results "
            "ORDER BY total_score DESC, record_id ASC "
            "LIMIT %s OFFSET %s"
        )
        params = [*score_params, model, *where_params, *score_params, limit, offset]

        try:
            rows = self._fetch_similarity(sql, params)
        except SimilarityUnavailable as e:
            self._downgrade(e)
            return FuzzyResult(ids=self.search(terms, model, limit, offset), total=None)

        if rows:
            return FuzzyResult(ids=[row[0] for row in rows], total=int(rows[0][2]))
        # A page past the end has no rows to carry the window count
        return FuzzyResult(ids=[], total=0 if offset == 0 else None)

    def fuzzy_count(self, terms: Sequence[str], model: str, threshold: float = 0.3) -> int:
        """Total number of records with any token similar to any term."""
        if not terms:
            return 0

        if not self.supports_fuzzy_search():
            return self.count(terms, model)

        where_sql, where_params = self._similarity_clause(terms, threshold)
        sql = (
            "SELECT COUNT(*) FROM ("
            f"SELECT record_id FROM {self.quoted_table} "
            f"WHERE model = %s AND ({where_sql}) "
            "GROUP BY record_id"
            ") AS search_results"
        )

        try:
            rows = self._fetch_similarity(sql, [model, *where_params])
        except SimilarityUnavailable as e:
            self._downgrade(e)
            return self.count(terms, model)

        return int(rows[0][0]) if rows else 0
