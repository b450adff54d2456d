"""
Per-database query engines for the posting table
"""
from .base import DatabaseEngine, FuzzyResult
from .factory import clear_engine_cache, get_engine
from .mysql import MySQLEngine
from .postgresql import PostgreSQLEngine
from .sqlite import SQLiteEngine

__all__ = [
    'DatabaseEngine',
    'FuzzyResult',
    'MySQLEngine',
    'PostgreSQLEngine',
    'SQLiteEngine',
    'clear_engine_cache',
    'get_engine',
]
