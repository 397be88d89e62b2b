"""
Retry policy for the browser render path.

Responsibilities:
- Attempt budget (fixed ceiling, default 3)
- Retryable vs terminal classification
- Exponential backoff timing with jitter
- Browser version rotation per attempt

This module is purely decisional: no I/O, no sleeping, no fetching.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from .config import BROWSER_VERSIONS, USER_AGENT_TEMPLATES, FetchConfig


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_MAX = 30.0
JITTER_RATIO = 0.2


@dataclass
class RetryPolicy:
    """Effective retry plan for one render job."""
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_max: float = DEFAULT_BACKOFF_MAX
    jitter_ratio: float = JITTER_RATIO

    @classmethod
    def from_config(cls, config: FetchConfig) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(config.max_attempts)),
            backoff_base=float(config.backoff_base),
            backoff_max=float(config.backoff_max),
        )


def should_retry(error: Exception, attempt_index: int, policy: RetryPolicy) -> bool:
    """
    Decide whether another attempt is allowed after ``error``.

    Errors carry a ``retryable`` flag; anything without one (a bug, not a
    network condition) is never retried.
    """
    if not getattr(error, "retryable", False):
        return False
    return attempt_index + 1 < policy.max_attempts


def compute_backoff_delay(
    attempt_index: int,
    policy: RetryPolicy,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before the attempt following ``attempt_index``.

    base * 2^attempt, capped at backoff_max, with ±jitter_ratio jitter.
    """
    rng = rng or random
    delay = min(policy.backoff_base * (2 ** attempt_index), policy.backoff_max)
    jitter = delay * rng.uniform(-policy.jitter_ratio, policy.jitter_ratio)
    return max(0.0, delay + jitter)


def user_agent_for_attempt(config: FetchConfig, attempt_index: int = 0) -> str:
    """Fixed user agent if configured, else rotate browser version per attempt."""
    if config.user_agent:
        return config.user_agent
    if not config.rotate_user_agent:
        return USER_AGENT_TEMPLATES[0].format(version=BROWSER_VERSIONS[0])
    version = BROWSER_VERSIONS[attempt_index % len(BROWSER_VERSIONS)]
    template = random.choice(USER_AGENT_TEMPLATES)
    return template.format(version=version)


__all__ = [
    "RetryPolicy",
    "compute_backoff_delay",
    "should_retry",
    "user_agent_for_attempt",
]
