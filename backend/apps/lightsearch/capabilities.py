"""
pg_trgm capability detection

Whether a database has the pg_trgm extension (and so similarity()) is
checked once per connection alias and kept in the Django cache with no
timeout. The entry is only dropped when a similarity query fails because
the function is missing, after which the next call probes again.
"""
import enum
import logging

from django.core.cache import cache
from django.db import DatabaseError, connections, transaction

logger = logging.getLogger(__name__)

CACHE_KEY_TEMPLATE = 'lightsearch_pgtrgm_{using}'

# SQLSTATE undefined_function
UNDEFINED_FUNCTION = '42883'


class CapabilityState(str, enum.Enum):
    UNKNOWN = 'unknown'
    SUPPORTED = 'supported'
    UNSUPPORTED = 'unsupported'


def _cache_key(using: str) -> str:
    return CACHE_KEY_TEMPLATE.format(using=using)


def get_similarity_state(using: str = 'default') -> CapabilityState:
    """Cached state for a connection alias, without probing."""
    value = cache.get(_cache_key(using))
    if value is None:
        return CapabilityState.UNKNOWN
    return CapabilityState(value)


def _probe(using: str) -> bool:
    connection = connections[using]
    if connection.vendor != 'postgresql':
        return False

    try:
        # Savepoint so a failed probe doesn't poison an open transaction
        with transaction.atomic(using=using):
            with connection.cursor() as cursor:
                cursor.execute(
                    "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'pg_trgm')"
                )
                return bool(cursor.fetchone()[0])
    except DatabaseError as e:
        logger.warning(f"pg_trgm probe failed on '{using}', treating as unavailable: {e}")
        return False


def has_similarity_extension(using: str = 'default') -> bool:
    """
    Check if the database behind `using` has pg_trgm installed.
    Result is cached indefinitely to avoid repeated database queries.
    """
    state = get_similarity_state(using)
    if state is CapabilityState.UNKNOWN:
        state = CapabilityState.SUPPORTED if _probe(using) else CapabilityState.UNSUPPORTED
        cache.set(_cache_key(using), state.value, timeout=None)
        logger.info(f"pg_trgm on '{using}': {state.value}")
    return state is CapabilityState.SUPPORTED


def invalidate_similarity_cache(using: str = 'default') -> None:
    """Forget the cached result for one alias; the next check probes again."""
    cache.delete(_cache_key(using))


def is_missing_similarity(error: Exception) -> bool:
    """
    True when a database error means similarity() does not exist.

    Prefers the driver's SQLSTATE (psycopg2 `pgcode`, psycopg 3 `sqlstate`);
    falls back to the error text for drivers that expose neither.
    """
    for candidate in (error, error.__cause__):
        if candidate is None:
            continue
        code = getattr(candidate, 'pgcode', None) or getattr(candidate, 'sqlstate', None)
        if code:
            return code == UNDEFINED_FUNCTION
    return 'similarity' in str(error).lower()
