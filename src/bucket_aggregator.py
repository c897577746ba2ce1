"""Bucket aggregation: groups classified units per destination.

Buckets are created lazily on the first unit for a destination and keep
first-encounter order; the bucket map itself is an insertion-ordered dict,
so destinations also stay in first-encounter order.
"""

from __future__ import annotations

from typing import Iterable

from split_ir import ExtractedUnit, RegistrationBucket

BucketMap = dict[str, RegistrationBucket]


def add(bucket_map: BucketMap, destination: str, unit: ExtractedUnit) -> bool:
    """Append unit to the destination's bucket.

    Prompt templates go to the prompt sequence, everything else to the
    operation sequence. A unit already present (same source offset) is not
    appended again.

    Returns:
        True if the unit was appended, False if it was already there.
    """
    bucket = bucket_map.get(destination)
    if bucket is None:
        bucket = RegistrationBucket(destination=destination)
        bucket_map[destination] = bucket
    return bucket.append(unit)


def aggregate(pairs: Iterable[tuple[str, ExtractedUnit]]) -> BucketMap:
    """Build a fresh bucket map from (destination, unit) pairs."""
    bucket_map: BucketMap = {}
    for destination, unit in pairs:
        add(bucket_map, destination, unit)
    return bucket_map
