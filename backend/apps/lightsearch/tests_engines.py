"""
Tests for the posting store and the per-database query engines

Prefix search runs against the test database for every engine whose LIKE
semantics match it (the MySQL engine's SQL also runs on SQLite). PostgreSQL
fuzzy search is exercised with the query execution mocked out; the real
pg_trgm SQL is covered in tests/test_search_scenarios.py.
"""
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.db import OperationalError, ProgrammingError, connection
from django.test import TestCase

from apps.lightsearch.capabilities import (
    CapabilityState,
    get_similarity_state,
    invalidate_similarity_cache,
)
from apps.lightsearch.engines import (
    DatabaseEngine,
    FuzzyResult,
    MySQLEngine,
    PostgreSQLEngine,
    SQLiteEngine,
    clear_engine_cache,
    get_engine,
)
from apps.lightsearch.engines.base import like_prefix
from apps.lightsearch.models import Posting

TABLE = 'lightsearch_index'


class PostingStoreTest(TestCase):
    """Test insert / delete_by_record / delete_by_model"""

    def setUp(self):
        self.engine = SQLiteEngine(TABLE)

    def test_insert_allows_duplicates(self):
        for _ in range(3):
            self.engine.insert('ocean', 1, 'blog.Article')

        postings = Posting.objects.filter(token='ocean', record_id='1', model='blog.Article')
        self.assertEqual(postings.count(), 3)
        self.assertIsNotNone(postings.first().created_at)

    def test_insert_stores_record_id_as_string(self):
        self.engine.insert('ocean', '0b1c7a4e-8f57-4c3e-9d2a-6b1f0e3c5a77', 'blog.Article')
        self.assertTrue(
            Posting.objects.filter(record_id='0b1c7a4e-8f57-4c3e-9d2a-6b1f0e3c5a77').exists()
        )

    def test_insert_many_matches_repeated_insert(self):
        written = self.engine.insert_many(
            ['ocean', 'ocean', 'voyage'], 7, 'blog.Article', batch_size=2
        )

        self.assertEqual(written, 3)
        self.assertEqual(Posting.objects.filter(record_id='7', token='ocean').count(), 2)
        self.assertEqual(Posting.objects.filter(record_id='7', token='voyage').count(), 1)

    def test_insert_many_nothing_to_write(self):
        self.assertEqual(self.engine.insert_many([], 7, 'blog.Article'), 0)
        self.assertFalse(Posting.objects.exists())

    def test_delete_by_record_is_scoped_to_model(self):
        self.engine.insert('ocean', 1, 'blog.Article')
        self.engine.insert('ocean', 1, 'blog.Comment')
        self.engine.insert('ocean', 2, 'blog.Article')

        self.engine.delete_by_record(1, 'blog.Article')

        remaining = set(Posting.objects.values_list('record_id', 'model'))
        self.assertEqual(remaining, {('1', 'blog.Comment'), ('2', 'blog.Article')})

    def test_delete_by_model(self):
        self.engine.insert('ocean', 1, 'blog.Article')
        self.engine.insert('river', 2, 'blog.Article')
        self.engine.insert('ocean', 1, 'blog.Comment')

        self.engine.delete_by_model('blog.Article')

        self.assertEqual(list(Posting.objects.values_list('model', flat=True)), ['blog.Comment'])


class PrefixSearchMixin:
    """Shared ranking tests, run once per portable engine"""

    engine_class = None
    # Databases whose LIKE behaves the way this dialect expects
    vendors = ()

    def setUp(self):
        if connection.vendor not in self.vendors:
            self.skipTest(f"{self.engine_class.__name__} needs one of {self.vendors}")
        self.engine = self.engine_class(TABLE)
        # record 2: ocean x3, record 1: ocean x1 + oceanic x1, record 3: river
        self.engine.insert_many(['ocean', 'ocean', 'ocean'], 2, 'blog.Article')
        self.engine.insert_many(['ocean', 'oceanic'], 1, 'blog.Article')
        self.engine.insert_many(['river'], 3, 'blog.Article')
        self.engine.insert_many(['ocean'] * 5, 9, 'blog.Comment')

    def test_ranked_by_occurrences(self):
        self.assertEqual(self.engine.search(['ocean'], 'blog.Article'), ['2', '1'])

    def test_prefix_match(self):
        self.assertEqual(self.engine.search(['oce'], 'blog.Article'), ['2', '1'])
        self.assertEqual(self.engine.search(['oceani'], 'blog.Article'), ['1'])

    def test_token_must_start_with_term(self):
        self.assertEqual(self.engine.search(['cean'], 'blog.Article'), [])

    def test_case_insensitive(self):
        self.assertEqual(self.engine.search(['OCEAN'], 'blog.Article'), ['2', '1'])

    def test_any_term_matches(self):
        self.assertEqual(self.engine.search(['river', 'oceanic'], 'blog.Article'), ['1', '3'])

    def test_ties_broken_by_record_id(self):
        self.engine.insert_many(['delta'], 'b', 'blog.Tag')
        self.engine.insert_many(['delta'], 'a', 'blog.Tag')
        self.engine.insert_many(['delta'], 'c', 'blog.Tag')
        self.assertEqual(self.engine.search(['delta'], 'blog.Tag'), ['a', 'b', 'c'])

    def test_limit_and_offset(self):
        self.assertEqual(self.engine.search(['ocean', 'river'], 'blog.Article', limit=2), ['2', '1'])
        self.assertEqual(
            self.engine.search(['ocean', 'river'], 'blog.Article', limit=2, offset=2), ['3']
        )
        self.assertEqual(self.engine.search(['ocean'], 'blog.Article', limit=10, offset=5), [])

    def test_count(self):
        self.assertEqual(self.engine.count(['ocean'], 'blog.Article'), 2)
        self.assertEqual(self.engine.count(['ocean', 'river'], 'blog.Article'), 3)
        self.assertEqual(self.engine.count(['ocean'], 'blog.Comment'), 1)
        self.assertEqual(self.engine.count(['missing'], 'blog.Article'), 0)

    def test_wildcards_in_terms_are_literal(self):
        self.assertEqual(self.engine.search(['%'], 'blog.Article'), [])
        self.assertEqual(self.engine.search(['_cean'], 'blog.Article'), [])

    def test_no_terms(self):
        self.assertEqual(self.engine.search([], 'blog.Article'), [])
        self.assertEqual(self.engine.count([], 'blog.Article'), 0)

    def test_fuzzy_calls_fall_back_to_prefix_search(self):
        self.assertFalse(self.engine.supports_fuzzy_search())

        result = self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)

        self.assertEqual(result, FuzzyResult(ids=['2', '1'], total=None))
        self.assertEqual(self.engine.fuzzy_count(['ocean'], 'blog.Article', 0.3), 2)


class SQLiteEngineTest(PrefixSearchMixin, TestCase):
    engine_class = SQLiteEngine
    vendors = ('sqlite',)


class MySQLEngineTest(PrefixSearchMixin, TestCase):
    engine_class = MySQLEngine
    vendors = ('mysql', 'sqlite')


class PostgreSQLPrefixSearchTest(PrefixSearchMixin, TestCase):
    engine_class = PostgreSQLEngine
    vendors = ('postgresql',)

    def setUp(self):
        super().setUp()
        # Prefix path only, even where pg_trgm is installed
        cache.set('lightsearch_pgtrgm_default', 'unsupported', timeout=None)
        self.addCleanup(cache.delete, 'lightsearch_pgtrgm_default')


class PrefixClauseTest(TestCase):
    """Test the dialect-specific match predicates"""

    def test_like_prefix_escapes_wildcards(self):
        self.assertEqual(like_prefix('ocean'), 'ocean%')
        self.assertEqual(like_prefix('50%_off'), '50\\%\\_off%')

    def test_dialects(self):
        expected = {
            MySQLEngine: 'token LIKE %s OR token LIKE %s',
            SQLiteEngine: "token LIKE %s ESCAPE '\\' OR token LIKE %s ESCAPE '\\'",
            PostgreSQLEngine: 'token ILIKE %s OR token ILIKE %s',
        }
        for engine_class, clause in expected.items():
            with self.subTest(engine=engine_class.__name__):
                sql, params = engine_class(TABLE).prefix_clause(['sea', 'tide'])
                self.assertEqual(sql, clause)
                self.assertEqual(params, ['sea%', 'tide%'])

    def test_base_engine_has_no_dialect(self):
        with self.assertRaises(NotImplementedError):
            DatabaseEngine(TABLE).prefix_clause(['sea'])


class PostgreSQLEngineTest(TestCase):
    """Test PostgreSQL fuzzy search, fallback and recovery"""

    def setUp(self):
        cache.clear()
        self.engine = PostgreSQLEngine(TABLE)
        self.engine.search = MagicMock(return_value=['4', '2'])
        self.engine.count = MagicMock(return_value=2)

    def _with_trgm(self, available=True):
        patcher = patch(
            'apps.lightsearch.engines.postgresql.has_similarity_extension',
            return_value=available,
        )
        probe = patcher.start()
        self.addCleanup(patcher.stop)
        return probe

    def _with_probe(self, available=True):
        """Patch only the pg_extension query; the shared cache stays real."""
        patcher = patch('apps.lightsearch.capabilities._probe', return_value=available)
        probe = patcher.start()
        self.addCleanup(patcher.stop)
        return probe

    def test_supports_fuzzy_search_reads_shared_cache(self):
        probe = self._with_probe(True)

        self.assertTrue(self.engine.supports_fuzzy_search())
        self.assertTrue(self.engine.supports_fuzzy_search())
        probe.assert_called_once_with('default')

    def test_sees_capability_recomputed_after_invalidation(self):
        probe = self._with_probe(False)
        self.assertFalse(self.engine.supports_fuzzy_search())

        invalidate_similarity_cache('default')
        probe.return_value = True

        self.assertTrue(self.engine.supports_fuzzy_search())
        self.assertEqual(get_similarity_state('default'), CapabilityState.SUPPORTED)

    def test_engines_share_one_flag_per_alias(self):
        self._with_probe(True)
        other = PostgreSQLEngine('other_index')
        self.assertTrue(other.supports_fuzzy_search())

        cache.set('lightsearch_pgtrgm_default', 'unsupported', timeout=None)

        self.assertFalse(self.engine.supports_fuzzy_search())
        self.assertFalse(other.supports_fuzzy_search())

    def test_recovers_after_downgrade_once_extension_is_back(self):
        probe = self._with_probe(True)
        error = ProgrammingError('function similarity(character varying, unknown) does not exist')

        with patch.object(self.engine, '_fetch_all', side_effect=error):
            result = self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)

        self.assertEqual(result, FuzzyResult(ids=['4', '2'], total=None))
        self.assertEqual(get_similarity_state('default'), CapabilityState.UNKNOWN)

        # Extension reinstalled: the next check probes again and fuzzy search resumes
        with patch.object(self.engine, '_fetch_all', return_value=[('9', 0.8, 1)]):
            result = self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)

        self.assertEqual(result, FuzzyResult(ids=['9'], total=1))
        self.assertEqual(probe.call_count, 2)

    def test_fuzzy_search_without_trgm_uses_prefix_search(self):
        self._with_trgm(False)

        with patch.object(self.engine, '_fetch_all') as fetch:
            result = self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)

        fetch.assert_not_called()
        self.engine.search.assert_called_once_with(['ocean'], 'blog.Article', 10, 0)
        self.assertEqual(result.ids, ['4', '2'])
        self.assertIsNone(result.total)

    def test_fuzzy_count_without_trgm_uses_count(self):
        self._with_trgm(False)
        self.assertEqual(self.engine.fuzzy_count(['ocean'], 'blog.Article'), 2)
        self.engine.count.assert_called_once_with(['ocean'], 'blog.Article')

    def test_fuzzy_search_query(self):
        self._with_trgm(True)

        with patch.object(
            self.engine, '_fetch_all', return_value=[('7', 1.4, 3), ('2', 0.5, 3)]
        ) as fetch:
            result = self.engine.fuzzy_search(['ocean', 'tale'], 'blog.Article', 0.25, 2, 0)

        self.assertEqual(result, FuzzyResult(ids=['7', '2'], total=3))

        sql, params = fetch.call_args[0]
        self.assertIn('COUNT(*) OVER ()', sql)
        self.assertIn('ORDER BY total_score DESC, record_id ASC', sql)
        self.assertEqual(sql.count('MAX(CASE WHEN similarity(token, %s) > %s'), 4)
        self.assertEqual(sql.count('%s'), len(params))

        score_params = ['ocean', 0.25, 'ocean', 'tale', 0.25, 'tale']
        where_params = ['ocean', 0.25, 'tale', 0.25]
        self.assertEqual(
            params,
            [*score_params, 'blog.Article', *where_params, *score_params, 2, 0],
        )

    def test_fuzzy_search_no_matches(self):
        self._with_trgm(True)

        with patch.object(self.engine, '_fetch_all', return_value=[]):
            first_page = self.engine.fuzzy_search(['zzz'], 'blog.Article', 0.3, 10, 0)
            later_page = self.engine.fuzzy_search(['zzz'], 'blog.Article', 0.3, 10, 20)

        self.assertEqual(first_page, FuzzyResult(ids=[], total=0))
        # Past the last page the window count is lost
        self.assertEqual(later_page, FuzzyResult(ids=[], total=None))

    def test_fuzzy_count_query(self):
        self._with_trgm(True)

        with patch.object(self.engine, '_fetch_all', return_value=[(5,)]) as fetch:
            total = self.engine.fuzzy_count(['ocean'], 'blog.Article', 0.4)

        self.assertEqual(total, 5)
        sql, params = fetch.call_args[0]
        self.assertIn('similarity(token, %s) > %s', sql)
        self.assertEqual(params, ['blog.Article', 'ocean', 0.4])

    def test_missing_similarity_downgrades_and_falls_back(self):
        probe = self._with_probe(True)
        cache.set('lightsearch_pgtrgm_default', 'supported', timeout=None)
        error = ProgrammingError('function similarity(character varying, unknown) does not exist')

        with patch.object(self.engine, '_fetch_all', side_effect=error) as fetch:
            result = self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)

            self.assertEqual(result, FuzzyResult(ids=['4', '2'], total=None))
            self.assertIsNone(cache.get('lightsearch_pgtrgm_default'))

            # Re-probe finds no extension: later calls go straight to prefix search
            probe.return_value = False
            self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)
            self.assertEqual(fetch.call_count, 1)
            self.assertFalse(self.engine.supports_fuzzy_search())

    def test_missing_similarity_in_count_falls_back(self):
        self._with_probe(True)
        error = ProgrammingError('function similarity(character varying, unknown) does not exist')

        with patch.object(self.engine, '_fetch_all', side_effect=error):
            self.assertEqual(self.engine.fuzzy_count(['ocean'], 'blog.Article'), 2)

        self.assertEqual(get_similarity_state('default'), CapabilityState.UNKNOWN)

    def test_unrelated_errors_propagate(self):
        self._with_trgm(True)
        error = OperationalError('server closed the connection unexpectedly')

        with patch.object(self.engine, '_fetch_all', side_effect=error):
            with self.assertRaises(OperationalError):
                self.engine.fuzzy_search(['ocean'], 'blog.Article', 0.3, 10, 0)

        self.engine.search.assert_not_called()
        self.assertTrue(self.engine.supports_fuzzy_search())

    def test_refresh_capability_probes_again(self):
        probe = self._with_probe(True)
        cache.set('lightsearch_pgtrgm_default', 'unsupported', timeout=None)

        self.assertTrue(self.engine.refresh_capability())
        probe.assert_called_once_with('default')

    def test_no_terms(self):
        self.assertEqual(self.engine.fuzzy_search([], 'blog.Article'), FuzzyResult(ids=[], total=0))
        self.assertEqual(self.engine.fuzzy_count([], 'blog.Article'), 0)


class EngineFactoryTest(TestCase):
    """Test get_engine selection and memoization"""

    def setUp(self):
        clear_engine_cache()
        self.addCleanup(clear_engine_cache)

    def _engine_for_vendor(self, vendor):
        fake_connection = MagicMock(vendor=vendor)
        with patch('apps.lightsearch.engines.factory.connections', {'default': fake_connection}):
            return get_engine(TABLE, 'default')

    def test_selects_engine_by_vendor(self):
        expected = {
            'postgresql': PostgreSQLEngine,
            'mysql': MySQLEngine,
            'sqlite': SQLiteEngine,
        }
        for vendor, engine_class in expected.items():
            with self.subTest(vendor=vendor):
                self.assertIsInstance(self._engine_for_vendor(vendor), engine_class)

    def test_unknown_vendor_uses_default_engine(self):
        engine = self._engine_for_vendor('oracle')
        self.assertIs(type(engine), MySQLEngine)

    def test_engines_are_memoized(self):
        first = get_engine(TABLE, 'default')
        self.assertIs(get_engine(TABLE, 'default'), first)
        self.assertIsNot(get_engine('other_index', 'default'), first)

    def test_defaults_from_settings(self):
        engine = get_engine()
        self.assertEqual(engine.table, 'lightsearch_index')
        self.assertEqual(engine.using, 'default')
        self.assertEqual(engine.vendor, connection.vendor)
