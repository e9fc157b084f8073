"""
Deterministic variant assignment.

The same (feature, context) pair always lands in the same bucket, in every
process, with no shared state. CRC32 is used for speed, not secrecy.
"""

import zlib
from typing import Any, Mapping

from .context import GuestContext, serialize_context
from .exceptions import EmptyVariantWeightsError, InvalidVariantWeightsError


def validate_weights(weights: Mapping[str, int]) -> dict[str, int]:
    """
    Check a weight table at definition time.

    Returns:
        A plain dict copy preserving declaration order

    Raises:
        EmptyVariantWeightsError: no variants given
        InvalidVariantWeightsError: negative weight or total other than 100
    """
    if not weights:
        raise EmptyVariantWeightsError()

    for name, weight in weights.items():
        if not isinstance(weight, int) or isinstance(weight, bool) or weight < 0:
            raise InvalidVariantWeightsError(
                f"Weight for variant [{name}] must be a non-negative integer."
            )

    total = sum(weights.values())
    if total != 100:
        raise InvalidVariantWeightsError.must_sum_to_100(total)

    return dict(weights)


def bucket_for(feature: str, context: Any) -> int:
    """
    Map a (feature, context) pair to a bucket in [0, 99].

    ``None`` buckets as the guest context, matching what the engine
    resolves it to.
    """
    if context is None:
        context = GuestContext()
    key = f"{feature}|{serialize_context(context)}"
    return abs(zlib.crc32(key.encode("utf-8"))) % 100


def calculate_variant(feature: str, context: Any, weights: Mapping[str, int]) -> str:
    """
    Pick a variant for a context.

    Walks the weights in declaration order; the first variant whose
    cumulative weight exceeds the bucket wins. Tables summing below 100
    fall back to the last declared variant.

    Raises:
        EmptyVariantWeightsError: weights is empty
    """
    if not weights:
        raise EmptyVariantWeightsError()

    bucket = bucket_for(feature, context)
    cumulative = 0
    for name, weight in weights.items():
        cumulative += weight
        if bucket < cumulative:
            return name

    return next(reversed(list(weights)))
