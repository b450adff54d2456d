"""
Base class for the per-database query engines

Holds the posting mutations, which are the same on every backend, and the
prefix search/count queries. Subclasses supply the dialect's prefix match
predicate and, where the database can do it, similarity search.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from django.db import connections
from django.utils import timezone

logger = logging.getLogger(__name__)


@dataclass
class FuzzyResult:
    """
    One page of fuzzy search results.

    total is None when the engine could not count matches in the same
    query (prefix fallback); callers then ask fuzzy_count().
    """
    ids: List[str] = field(default_factory=list)
    total: Optional[int] = None


def like_prefix(term: str) -> str:
    """LIKE pattern matching values that start with term."""
    escaped = term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f"{escaped}%"


class DatabaseEngine:
    """
    Posting store and ranked prefix search over one table.

    Ranking: records are ordered by how many of their postings match any
    term (field weights are stored as duplicate rows), then by record_id.
    """

    vendor: Optional[str] = None

    def __init__(self, table: str, using: str = 'default'):
        """
        Args:
            table: Posting table name
            using: Database alias from settings.DATABASES
        """
        self.table = table
        self.using = using

    def __repr__(self):
        return f"{self.__class__.__name__}(table={self.table!r}, using={self.using!r})"

    @property
    def connection(self):
        return connections[self.using]

    @property
    def quoted_table(self) -> str:
        return self.connection.ops.quote_name(self.table)

    # ── Mutations ───────────────────────────────────────────────

    def _now(self):
        return self.connection.ops.adapt_datetimefield_value(timezone.now())

    def insert(self, token: str, record_id, model: str) -> None:
        """
        Insert a token posting.
        Duplicate tokens for the same record are allowed (field weighting).
        """
        now = self._now()
        with self.connection.cursor() as cursor:
            cursor.execute(
                f"INSERT INTO {self.quoted_table} (token, record_id, model, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, %s)",
                [token, str(record_id), model, now, now],
            )

    def insert_many(self, tokens: Iterable[str], record_id, model: str, batch_size: int = 500) -> int:
        """
        Insert one posting per token, duplicates included.

        Writes the same rows as calling insert() per token. Returns the
        number of rows written.
        """
        now = self._now()
        rows = [[token, str(record_id), model, now, now] for token in tokens]
        if not rows:
            return 0

        sql = (
            f"INSERT INTO {self.quoted_table} (token, record_id, model, created_at, updated_at) "
            "VALUES (%s, %s, %s, %s, %s)"
        )
        with self.connection.cursor() as cursor:
            for start in range(0, len(rows), batch_size):
                cursor.executemany(sql, rows[start:start + batch_size])
        return len(rows)

    def delete_by_record(self, record_id, model: str) -> None:
        """Remove all postings for a record."""
        with self.connection.cursor() as cursor:
            cursor.execute(
                f"DELETE FROM {self.quoted_table} WHERE record_id = %s AND model = %s",
                [str(record_id), model],
            )

    def delete_by_model(self, model: str) -> None:
        """Delete all postings for a specific model."""
        with self.connection.cursor() as cursor:
            cursor.execute(
                f"DELETE FROM {self.quoted_table} WHERE model = %s",
                [model],
            )

    # ── Prefix search ───────────────────────────────────────────

    def prefix_clause(self, terms: Sequence[str]) -> Tuple[str, list]:
        """
        SQL predicate matching tokens that start with any term,
        case-insensitively, plus its parameters.
        """
        raise NotImplementedError

    def _fetch_all(self, sql: str, params: list) -> list:
        with self.connection.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.fetchall()

    def search(self, terms: Sequence[str], model: str, limit: int = 10, offset: int = 0) -> List[str]:
        """
        Ranked record ids whose postings start with any of the terms.

        Ordered by number of matching postings (descending), then record_id
        so tied scores paginate the same way every time.
        """
        if not terms:
            return []

        clause, clause_params = self.prefix_clause(terms)
        sql = (
            f"SELECT record_id, COUNT(*) AS occurrences FROM {self.quoted_table} "
            f"WHERE model = %s AND ({clause}) "
            "GROUP BY record_id "
            "ORDER BY occurrences DESC, record_id ASC "
            "LIMIT %s OFFSET %s"
        )
        rows = self._fetch_all(sql, [model, *clause_params, limit, offset])
        return [row[0] for row in rows]

    def count(self, terms: Sequence[str], model: str) -> int:
        """Total number of records matching any term."""
        if not terms:
            return 0

        clause, clause_params = self.prefix_clause(terms)
        sql = (
            "SELECT COUNT(*) FROM ("
            f"SELECT record_id FROM {self.quoted_table} "
            f"WHERE model = %s AND ({clause}) "
            "GROUP BY record_id"
            ") AS search_results"
        )
        rows = self._fetch_all(sql, [model, *clause_params])
        return int(rows[0][0]) if rows else 0

    # ── Fuzzy search (default: prefix fallback) ────────────────

    def supports_fuzzy_search(self) -> bool:
        return False

    def fuzzy_search(
        self,
        terms: Sequence[str],
        model: str,
        threshold: float = 0.3,
        limit: int = 10,
        offset: int = 0,
    ) -> FuzzyResult:
        """
        Similarity search. Engines without similarity support answer
        with prefix search and an unknown total.
        """
        return FuzzyResult(ids=self.search(terms, model, limit, offset), total=None)

    def fuzzy_count(self, terms: Sequence[str], model: str, threshold: float = 0.3) -> int:
        return self.count(terms, model)
