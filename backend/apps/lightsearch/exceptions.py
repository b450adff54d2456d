"""
Exceptions raised by the search index
"""


class LightSearchError(Exception):
    """Base class for search index errors"""


class SimilarityUnavailable(LightSearchError):
    """
    Raised when a similarity query failed because pg_trgm is missing.

    Wraps the original database error, which stays reachable as __cause__.
    """

    def __init__(self, using: str, message: str = ''):
        self.using = using
        super().__init__(message or f"pg_trgm similarity() unavailable on '{using}'")


class ModelNotSearchable(LightSearchError):
    """Raised when a model label does not resolve to an installed model"""
