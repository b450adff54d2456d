"""
Tests for pg_trgm capability detection and caching
"""
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.db import DatabaseError, OperationalError, ProgrammingError
from django.test import TestCase

from apps.lightsearch.capabilities import (
    CapabilityState,
    get_similarity_state,
    has_similarity_extension,
    invalidate_similarity_cache,
    is_missing_similarity,
)


def _fake_postgres(exists=True, error=None):
    """A connection double whose probe query returns `exists` or raises `error`."""
    cursor = MagicMock()
    if error is not None:
        cursor.execute.side_effect = error
    cursor.fetchone.return_value = (exists,)

    fake = MagicMock(vendor='postgresql')
    fake.cursor.return_value.__enter__.return_value = cursor
    return fake, cursor


class CapabilityCacheTest(TestCase):
    """Test has_similarity_extension / invalidate_similarity_cache"""

    def setUp(self):
        cache.clear()
        self.addCleanup(cache.clear)

    def _patch_connections(self, **aliases):
        patcher = patch('apps.lightsearch.capabilities.connections', aliases)
        patcher.start()
        self.addCleanup(patcher.stop)
        # The probe runs in a savepoint on the real alias; skip it for doubles
        atomic = patch('apps.lightsearch.capabilities.transaction.atomic')
        atomic.start()
        self.addCleanup(atomic.stop)

    def test_state_starts_unknown(self):
        self.assertIs(get_similarity_state('default'), CapabilityState.UNKNOWN)

    def test_probe_result_is_cached(self):
        fake, cursor = _fake_postgres(exists=True)
        self._patch_connections(default=fake)

        self.assertTrue(has_similarity_extension('default'))
        self.assertTrue(has_similarity_extension('default'))

        cursor.execute.assert_called_once()
        self.assertIn('pg_extension', cursor.execute.call_args[0][0])
        self.assertIs(get_similarity_state('default'), CapabilityState.SUPPORTED)

    def test_extension_absent(self):
        fake, _ = _fake_postgres(exists=False)
        self._patch_connections(default=fake)

        self.assertFalse(has_similarity_extension('default'))
        self.assertIs(get_similarity_state('default'), CapabilityState.UNSUPPORTED)

    def test_probe_error_means_absent(self):
        fake, _ = _fake_postgres(error=ProgrammingError('permission denied for table pg_extension'))
        self._patch_connections(default=fake)

        self.assertFalse(has_similarity_extension('default'))
        self.assertIs(get_similarity_state('default'), CapabilityState.UNSUPPORTED)

    def test_non_postgres_backend_is_not_probed(self):
        # The test database itself (SQLite unless DATABASE_URL says otherwise)
        other = MagicMock(vendor='sqlite')
        self._patch_connections(default=other)

        self.assertFalse(has_similarity_extension('default'))
        other.cursor.assert_not_called()

    def test_cache_is_per_alias(self):
        with_trgm, _ = _fake_postgres(exists=True)
        without_trgm, _ = _fake_postgres(exists=False)
        self._patch_connections(default=with_trgm, replica=without_trgm)

        self.assertTrue(has_similarity_extension('default'))
        self.assertFalse(has_similarity_extension('replica'))

    def test_invalidate_clears_one_alias_and_reprobes(self):
        fake, cursor = _fake_postgres(exists=True)
        self._patch_connections(default=fake, replica=fake)
        has_similarity_extension('default')
        has_similarity_extension('replica')

        invalidate_similarity_cache('default')

        self.assertIs(get_similarity_state('default'), CapabilityState.UNKNOWN)
        self.assertIs(get_similarity_state('replica'), CapabilityState.SUPPORTED)

        cursor.fetchone.return_value = (False,)
        self.assertFalse(has_similarity_extension('default'))
        self.assertEqual(cursor.execute.call_count, 3)


class MissingSimilarityTest(TestCase):
    """Test is_missing_similarity classification"""

    def test_sqlstate_undefined_function(self):
        driver_error = Exception('function does not exist')
        driver_error.sqlstate = '42883'
        error = ProgrammingError('function does not exist')
        error.__cause__ = driver_error
        self.assertTrue(is_missing_similarity(error))

    def test_psycopg2_pgcode(self):
        driver_error = Exception('boom')
        driver_error.pgcode = '42883'
        error = ProgrammingError('boom')
        error.__cause__ = driver_error
        self.assertTrue(is_missing_similarity(error))

    def test_other_sqlstate_is_not_missing_similarity(self):
        driver_error = Exception('syntax error at or near "similarity"')
        driver_error.sqlstate = '42601'
        error = ProgrammingError('syntax error at or near "similarity"')
        error.__cause__ = driver_error
        self.assertFalse(is_missing_similarity(error))

    def test_message_fallback(self):
        self.assertTrue(is_missing_similarity(
            ProgrammingError('function similarity(character varying, unknown) does not exist')
        ))
        self.assertFalse(is_missing_similarity(OperationalError('connection refused')))
        self.assertFalse(is_missing_similarity(DatabaseError('deadlock detected')))
