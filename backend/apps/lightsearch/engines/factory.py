"""
Engine selection

Picks the query engine matching a connection's database vendor. Engines are
memoized per vendor, table and alias for the life of the process.
"""
import logging
from typing import Dict, Optional

from django.db import connections

from apps.lightsearch.conf import get_index_settings
from apps.lightsearch.engines.base import DatabaseEngine
from apps.lightsearch.engines.mysql import MySQLEngine
from apps.lightsearch.engines.postgresql import PostgreSQLEngine
from apps.lightsearch.engines.sqlite import SQLiteEngine

logger = logging.getLogger(__name__)

# Django reports MariaDB as 'mysql'
ENGINE_CLASSES = {
    'postgresql': PostgreSQLEngine,
    'mysql': MySQLEngine,
    'sqlite': SQLiteEngine,
}

DEFAULT_ENGINE_CLASS = MySQLEngine

_engines: Dict[str, DatabaseEngine] = {}


def engine_class_for(vendor: str):
    engine_class = ENGINE_CLASSES.get(vendor)
    if engine_class is None:
        logger.info(f"No search engine for vendor '{vendor}', using {DEFAULT_ENGINE_CLASS.__name__}")
        return DEFAULT_ENGINE_CLASS
    return engine_class


def get_engine(table: Optional[str] = None, using: Optional[str] = None) -> DatabaseEngine:
    """
    Get the engine for a table on a database alias.

    Args:
        table: Posting table (default: LIGHTSEARCH['TABLE'])
        using: Database alias (default: LIGHTSEARCH['DATABASE'])
    """
    if table is None or using is None:
        index_settings = get_index_settings()
        table = table or index_settings.table
        using = using or index_settings.database

    vendor = connections[using].vendor
    cache_key = f"{vendor}:{table}:{using}"

    engine = _engines.get(cache_key)
    if engine is None:
        engine = engine_class_for(vendor)(table, using=using)
        _engines[cache_key] = engine
    return engine


def clear_engine_cache() -> None:
    _engines.clear()
