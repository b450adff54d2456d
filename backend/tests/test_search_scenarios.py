"""
End-to-end search scenarios: index records, query them, check ranking.

Runs against whatever database the test settings point at (SQLite by
default). Fuzzy search is only exercised on PostgreSQL, where the tests
install pg_trgm into the test database when the role is allowed to.

Run with:
    pytest tests/test_search_scenarios.py -v
"""
from django.core.cache import cache
from django.db import DatabaseError, connection, transaction
from django.test import TestCase

from apps.lightsearch.capabilities import invalidate_similarity_cache
from apps.lightsearch.conf import build_index_settings
from apps.lightsearch.engines import clear_engine_cache, get_engine
from apps.lightsearch.models import Posting
from apps.lightsearch.services import LightSearchService, SearchDocument, SearchResults


# ═══════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════

ARTICLE_WEIGHTS = {'MODEL_FIELD_WEIGHTS': {'Article': {'title': 3, 'body': 1}}}


def _article(record_id, title, body):
    return SearchDocument(record_id, 'Article', {'title': title, 'body': body})


def _install_trgm():
    """
    Make sure the test database has pg_trgm.

    Returns False off PostgreSQL or when the extension can't be created.
    """
    if connection.vendor != 'postgresql':
        return False
    try:
        with transaction.atomic():
            with connection.cursor() as cursor:
                cursor.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")
    except DatabaseError:
        # No CREATE privilege; it may still be installed already
        pass
    with connection.cursor() as cursor:
        cursor.execute("SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'pg_trgm')")
        return bool(cursor.fetchone()[0])


class ScenarioTestCase(TestCase):

    def setUp(self):
        cache.clear()
        clear_engine_cache()
        self.service = LightSearchService(build_index_settings(ARTICLE_WEIGHTS))


# ═══════════════════════════════════════════════════════════════════
# Ranking
# ═══════════════════════════════════════════════════════════════════


class WeightedRankingScenarioTest(ScenarioTestCase):
    """Two articles whose weighted scores tie on 'ocean'"""

    def setUp(self):
        super().setUp()
        self.service.index_records([
            _article('A', 'ocean voyage', 'ocean'),
            _article('B', 'ocean', 'ocean voyage tale'),
        ])

    def test_tie_broken_by_record_id(self):
        # A: 3 (title) + 1 (body) = 4; B: 3 (title) + 1 (body) = 4
        results = self.service.search('ocean', 'Article', limit=10)
        self.assertEqual(results, SearchResults(ids=['A', 'B'], hits=2))

    def test_title_weight_wins(self):
        # A: voyage in title (3); B: voyage in body (1)
        self.assertEqual(self.service.search('voyage', 'Article').ids, ['A', 'B'])

    def test_body_only_term(self):
        self.assertEqual(self.service.search('tale', 'Article').ids, ['B'])

    def test_ranking_is_monotonic(self):
        self.service.index_records([
            _article(f'X{n}', 'harbour ' * (n % 3), 'harbour pier' if n % 2 else 'pier')
            for n in range(8)
        ])
        engine = self.service.engine
        terms = ['harbour']

        ids = engine.search(terms, 'Article', limit=100)
        scores = {
            record_id: Posting.objects.filter(
                model='Article', record_id=record_id, token__startswith='harbour'
            ).count()
            for record_id in ids
        }
        ordering = [(-scores[record_id], record_id) for record_id in ids]
        self.assertEqual(ordering, sorted(ordering))


# ═══════════════════════════════════════════════════════════════════
# Index lifecycle
# ═══════════════════════════════════════════════════════════════════


class IndexLifecycleScenarioTest(ScenarioTestCase):

    def test_index_then_remove_leaves_nothing(self):
        record = _article('42', 'coral reef', 'reef fish')
        self.service.index_records([record])
        self.service.remove_records([record])

        self.assertFalse(Posting.objects.filter(record_id='42').exists())
        self.assertEqual(self.service.search('coral', 'Article'), SearchResults([], 0))

    def test_reindexing_twice_equals_once(self):
        record = _article('42', 'coral reef', 'reef fish')

        self.service.index_records([record])
        once = sorted(Posting.objects.values_list('token', 'record_id', 'model'))
        self.service.index_records([record])
        twice = sorted(Posting.objects.values_list('token', 'record_id', 'model'))

        self.assertEqual(once, twice)

    def test_posting_count_is_terms_times_weight(self):
        # title: 2 terms x 3, body: 3 terms x 1
        written = self.service.index_records([_article('7', 'deep trench', 'cold dark water')])
        self.assertEqual(written, 2 * 3 + 3)
        self.assertEqual(Posting.objects.filter(record_id='7').count(), 9)




# ═══════════════════════════════════════════════════════════════════
# Fuzzy search (PostgreSQL + pg_trgm only)
# ═══════════════════════════════════════════════════════════════════


class FuzzySearchScenarioTest(ScenarioTestCase):

    def setUp(self):
        super().setUp()
        if not _install_trgm():
            self.skipTest("PostgreSQL with pg_trgm not available")
        invalidate_similarity_cache(self.service.settings.database)

    def test_misspelling_matches(self):
        self.service.index_records([
            _article('1', 'lighthouse keeper', 'storm'),
            _article('2', 'lighthose', 'keeper storm'),
        ])
        engine = get_engine()
        self.assertTrue(engine.supports_fuzzy_search())

        results = self.service.search('lighthouse', 'Article')

        self.assertEqual(results, SearchResults(ids=['1', '2'], hits=2))

    def test_matching_every_term_outranks_one_exact_hit(self):
        self.service.index_records([
            # Two postings, one per query term
            _article('H1', '', 'harbour pier'),
            # Four postings of one exact term: ranks first by occurrence count
            _article('H3', 'harbour', 'harbour'),
            # A near miss for one term
            _article('H2', 'harbor', ''),
        ])
        self.assertEqual(self.service.engine.search(['harbour', 'pier'], 'Article'), ['H3', 'H1'])

        results = self.service.search('harbour pier', 'Article')

        self.assertEqual(results, SearchResults(ids=['H1', 'H3', 'H2'], hits=3))

    def test_total_comes_with_each_page(self):
        self.service.index_records([
            _article(f'P{n}', 'lantern', '') for n in range(5)
        ])

        first = self.service.engine.fuzzy_search(['lantern'], 'Article', 0.3, 2, 0)
        last = self.service.engine.fuzzy_search(['lantern'], 'Article', 0.3, 2, 4)

        self.assertEqual(first.ids, ['P0', 'P1'])
        self.assertEqual(first.total, 5)
        self.assertEqual(last.ids, ['P4'])
        self.assertEqual(last.total, 5)
        self.assertEqual(self.service.engine.fuzzy_count(['lanter'], 'Article', 0.3), 5)

    def test_threshold_filters_weak_matches(self):
        self.service.index_records([_article('1', 'harbor', '')])
        self.assertEqual(self.service.search('harbour', 'Article', threshold=0.9), SearchResults([], 0))
