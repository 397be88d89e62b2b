"""
Score-range partitioning.

Shards are jointly exhaustive and mutually exclusive over [0, +inf):
    high    score >= 0.7
    medium  0.3 <= score < 0.7
    low     score < 0.3
"""

import math


HIGH_THRESHOLD = 0.7
MEDIUM_THRESHOLD = 0.3

# shard -> (inclusive lower bound, exclusive upper bound or None)
SHARD_BOUNDS = {
    "high": (HIGH_THRESHOLD, None),
    "medium": (MEDIUM_THRESHOLD, HIGH_THRESHOLD),
    "low": (0.0, MEDIUM_THRESHOLD),
}

SHARDS = tuple(SHARD_BOUNDS)


def determine_shard(score: float) -> str:
    """Shard for a score. Negative or non-finite scores are rejected."""
    if score is None or not isinstance(score, (int, float)) or not math.isfinite(score):
        raise ValueError(f"score must be a finite number, got {score!r}")
    if score < 0:
        raise ValueError(f"score must be non-negative, got {score}")
    if score >= HIGH_THRESHOLD:
        return "high"
    if score >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def shard_table(shard: str) -> str:
    if shard not in SHARD_BOUNDS:
        raise ValueError(f"unknown shard: {shard!r}")
    return f"links_{shard}"


def shards_for_min_score(min_score: float) -> list[str]:
    """Shards that can hold a record with score >= min_score."""
    selected = []
    for shard, (_, upper) in SHARD_BOUNDS.items():
        if upper is None or min_score < upper:
            selected.append(shard)
    return selected


def in_shard_range(shard: str, score: float) -> bool:
    lower, upper = SHARD_BOUNDS[shard]
    return score >= lower and (upper is None or score < upper)
