"""
Weighted posting builder

Field weights are encoded as repetition: a field with weight 3 contributes
each of its terms three times, and the query engines rank by row count.
"""
from typing import Any, Dict, List, Mapping

from apps.lightsearch.tokenizer import Tokenizer


def build_weighted_tokens(
    fields: Mapping[str, Any],
    weights: Dict[str, int],
    tokenizer: Tokenizer,
) -> List[str]:
    """
    Expand a record's field map into the token list to store.

    Args:
        fields: Field name -> scalar or nested value
        weights: Field name -> weight; missing fields weigh 1
        tokenizer: Tokenizer used for every field

    Returns:
        Tokens with per-field repetition, in field order
    """
    tokens: List[str] = []
    for name, value in fields.items():
        weight = weights.get(name, 1)
        if weight <= 0:
            continue
        field_tokens = tokenizer.extract_tokens(value)
        tokens.extend(field_tokens * weight)
    return tokens
