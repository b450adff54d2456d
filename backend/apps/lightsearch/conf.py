"""
Index settings

Reads settings.LIGHTSEARCH, fills in defaults and validates values.
"""
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


DEFAULT_STOPWORDS = frozenset([
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from',
    'has', 'he', 'in', 'is', 'it', 'its', 'of', 'on', 'that', 'the',
    'to', 'was', 'will', 'with', 'this', 'but', 'they', 'have',
    'had', 'what', 'when', 'where', 'who', 'which', 'why', 'how',
    'or', 'not', 'been', 'were', 'can', 'could', 'would', 'should',
    'may', 'might', 'must', 'shall', 'do', 'does', 'did', 'done',
])

DEFAULTS = {
    'TABLE': 'lightsearch_index',
    'DATABASE': 'default',
    'MIN_TOKEN_LENGTH': 2,
    'STOPWORDS': None,
    'MODEL_FIELD_WEIGHTS': {},
    'FUZZY_THRESHOLD': 0.3,
    'AUTO_INDEX_MODELS': [],
    'QUEUE': False,
    'BATCH_SIZE': 500,
}


@dataclass(frozen=True)
class IndexSettings:
    """Validated LIGHTSEARCH settings"""
    table: str = 'lightsearch_index'
    database: str = 'default'
    min_token_length: int = 2
    stopwords: FrozenSet[str] = DEFAULT_STOPWORDS
    model_field_weights: Dict[str, Dict[str, int]] = field(default_factory=dict)
    fuzzy_threshold: float = 0.3
    auto_index_models: Tuple[str, ...] = ()
    queue: bool = False
    batch_size: int = 500

    def weights_for(self, model: str) -> Dict[str, int]:
        return self.model_field_weights.get(model, {})


def _parse_weights(raw) -> Dict[str, Dict[str, int]]:
    if not isinstance(raw, dict):
        raise ImproperlyConfigured("LIGHTSEARCH['MODEL_FIELD_WEIGHTS'] must be a dict")

    weights = {}
    for model, fields in raw.items():
        if not isinstance(fields, dict):
            raise ImproperlyConfigured(
                f"LIGHTSEARCH['MODEL_FIELD_WEIGHTS']['{model}'] must map field names to integers"
            )
        try:
            weights[model] = {name: int(weight) for name, weight in fields.items()}
        except (TypeError, ValueError) as e:
            raise ImproperlyConfigured(
                f"Invalid field weight for model '{model}': {e}"
            ) from e
    return weights


def build_index_settings(overrides: Optional[dict] = None) -> IndexSettings:
    """
    Merge settings.LIGHTSEARCH (and optional overrides) over DEFAULTS.

    Raises:
        ImproperlyConfigured: on out-of-range or malformed values
    """
    raw = {**DEFAULTS, **getattr(settings, 'LIGHTSEARCH', {}), **(overrides or {})}

    min_token_length = int(raw['MIN_TOKEN_LENGTH'])
    if min_token_length < 1:
        raise ImproperlyConfigured("LIGHTSEARCH['MIN_TOKEN_LENGTH'] must be at least 1")

    threshold = float(raw['FUZZY_THRESHOLD'])
    if not 0.0 <= threshold <= 1.0:
        raise ImproperlyConfigured("LIGHTSEARCH['FUZZY_THRESHOLD'] must be between 0.0 and 1.0")

    batch_size = int(raw['BATCH_SIZE'])
    if batch_size < 1:
        raise ImproperlyConfigured("LIGHTSEARCH['BATCH_SIZE'] must be positive")

    stopwords = raw['STOPWORDS']
    stopwords = DEFAULT_STOPWORDS if stopwords is None else frozenset(w.lower() for w in stopwords)

    return IndexSettings(
        table=raw['TABLE'],
        database=raw['DATABASE'] or 'default',
        min_token_length=min_token_length,
        stopwords=stopwords,
        model_field_weights=_parse_weights(raw['MODEL_FIELD_WEIGHTS']),
        fuzzy_threshold=threshold,
        auto_index_models=tuple(raw['AUTO_INDEX_MODELS'] or ()),
        queue=bool(raw['QUEUE']),
        batch_size=batch_size,
    )


def get_index_settings() -> IndexSettings:
    """Current settings; rebuilt on every call so override_settings applies."""
    return build_index_settings()
