"""
Persistence-boundary codec for join keys.

Composite keys are stored inside the relationship's single-column
`fromColumn` field as `__JSON__:` followed by the JSON pair list, with
`toColumn` set to a fixed marker that readers ignore. Nothing past the
loader ever sees the sentinel string.
"""

import json
import logging
from typing import Any, Optional, Tuple

from pydantic import ValidationError

from datamodeler.constants import (
    COMPOSITE_KEY_PREFIX,
    COMPOSITE_KEY_TO_COLUMN,
    DEFAULT_JOIN_COLUMN,
)
from .model import CompositeJoinKey, JoinKey, JoinPair, SimpleJoinKey

logger = logging.getLogger(__name__)


def is_composite_column(value: Optional[str]) -> bool:
    return bool(value) and str(value).startswith(COMPOSITE_KEY_PREFIX)


def encode_join_key(key: JoinKey) -> Tuple[str, str]:
    """Return the `(fromColumn, toColumn)` pair to persist for a key."""
    if isinstance(key, CompositeJoinKey):
        payload = [
            {"fromColumn": pair.from_column, "toColumn": pair.to_column}
            for pair in key.pairs
        ]
        encoded = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        return f"{COMPOSITE_KEY_PREFIX}{encoded}", COMPOSITE_KEY_TO_COLUMN
    return key.from_column, key.to_column


def decode_join_key(from_column: Optional[str], to_column: Optional[str]) -> JoinKey:
    """
    Decode a stored `(fromColumn, toColumn)` pair. An undecodable composite
    key becomes an `id = id` simple key with `decode_error` set.
    """
    if not is_composite_column(from_column):
        return SimpleJoinKey(
            from_column=from_column or DEFAULT_JOIN_COLUMN,
            to_column=to_column or DEFAULT_JOIN_COLUMN,
        )

    raw = str(from_column)[len(COMPOSITE_KEY_PREFIX):]
    try:
        return pairs_to_join_key(json.loads(raw))
    except (ValueError, TypeError, ValidationError) as exc:
        logger.warning("Unable to decode composite join key %r: %s", raw, exc)
        return SimpleJoinKey(
            from_column=DEFAULT_JOIN_COLUMN,
            to_column=DEFAULT_JOIN_COLUMN,
            decode_error=f"Composite join key could not be decoded: {exc}",
        )


def pairs_to_join_key(conditions: Any) -> JoinKey:
    """
    Build a key from an editor-style condition list
    (`[{"fromColumn": ..., "toColumn": ...}, ...]`). A single pair stays simple.
    """
    if not isinstance(conditions, list) or not conditions:
        raise ValueError("Join conditions must be a non-empty list.")
    pairs = [JoinPair.model_validate(condition) for condition in conditions]
    if len(pairs) == 1:
        return SimpleJoinKey(from_column=pairs[0].from_column, to_column=pairs[0].to_column)
    return CompositeJoinKey(pairs=pairs)
