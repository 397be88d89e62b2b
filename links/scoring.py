"""
Keyword detection, link classification and relevance scoring.

Pure functions over a CandidateLink: no I/O, safe to call from any thread.
The keyword weight table lives in an immutable ScoringConfig handed to the
engine, so two engines with different tables never interfere.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping
from urllib.parse import urlsplit

from schema import CandidateLink, LINK_TYPES, ScoredLink


DEFAULT_KEYWORD_WEIGHTS = {
    "acfr": 3.0,
    "budget": 2.5,
    "finance director": 2.0,
    "contact": 2.0,
    "document": 1.5,
}

DEFAULT_TYPE_MULTIPLIERS = {
    "document": 1.2,
    "contact": 1.5,
    "general": 1.0,
}

# URL path fragments that mark a staff/contact page regardless of keywords
CONTACT_PATH_PATTERNS = (
    "/contact",
    "contact-us",
    "staff-directory",
    "leadership-team",
)

DOCUMENT_EXTENSIONS = ("pdf", "doc", "docx", "xls", "xlsx", "csv")

DOCUMENT_KEYWORD = "document"
CONTACT_KEYWORD = "contact"

SCORE_PRECISION = 6


def _frozen(mapping: Mapping[str, float], what: str) -> Mapping[str, float]:
    cleaned = {}
    for key, value in mapping.items():
        weight = float(value)
        if weight < 0:
            raise ValueError(f"{what} for {key!r} must be non-negative, got {value}")
        cleaned[str(key).lower()] = weight
    return MappingProxyType(cleaned)


@dataclass(frozen=True)
class ScoringConfig:
    """Immutable scoring configuration."""

    keyword_weights: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_KEYWORD_WEIGHTS)
    )
    type_multipliers: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TYPE_MULTIPLIERS)
    )
    contact_path_patterns: tuple[str, ...] = CONTACT_PATH_PATTERNS
    document_extensions: tuple[str, ...] = DOCUMENT_EXTENSIONS

    def __post_init__(self):
        object.__setattr__(
            self, "keyword_weights", _frozen(self.keyword_weights, "keyword weight")
        )
        multipliers = _frozen(self.type_multipliers, "type multiplier")
        missing = [t for t in LINK_TYPES if t not in multipliers]
        if missing:
            raise ValueError(f"type multipliers missing for: {', '.join(missing)}")
        object.__setattr__(self, "type_multipliers", multipliers)
        object.__setattr__(
            self,
            "contact_path_patterns",
            tuple(p.lower() for p in self.contact_path_patterns),
        )
        object.__setattr__(
            self,
            "document_extensions",
            tuple(e.lower().lstrip(".") for e in self.document_extensions),
        )

    @classmethod
    def from_dict(cls, data: dict | None) -> "ScoringConfig":
        """Build from a run-config ``scoring`` section; unknown keys are ignored."""
        if not data:
            return cls()
        kwargs = {}
        if "keyword_weights" in data:
            kwargs["keyword_weights"] = dict(data["keyword_weights"])
        if "type_multipliers" in data:
            merged = dict(DEFAULT_TYPE_MULTIPLIERS)
            merged.update(data["type_multipliers"])
            kwargs["type_multipliers"] = merged
        if "contact_path_patterns" in data:
            kwargs["contact_path_patterns"] = tuple(data["contact_path_patterns"])
        if "document_extensions" in data:
            kwargs["document_extensions"] = tuple(data["document_extensions"])
        return cls(**kwargs)


class ScoringEngine:
    """Turns candidate links into scored links."""

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()
        ext = "|".join(re.escape(e) for e in self.config.document_extensions)
        self._document_re = re.compile(rf"\.(?:{ext})$", re.IGNORECASE) if ext else None

    def is_document_url(self, url: str) -> bool:
        if self._document_re is None:
            return False
        return bool(self._document_re.search(urlsplit(url).path))

    def detect_keywords(self, candidate: CandidateLink) -> tuple[str, ...]:
        """
        Match configured keyword phrases against anchor text + URL.

        Order follows the weight table; ``document`` is appended for
        document-extension URLs when no phrase already matched it.
        """
        combined = f"{candidate.anchor_text} {candidate.url}".lower()
        keywords = [kw for kw in self.config.keyword_weights if kw in combined]
        if DOCUMENT_KEYWORD not in keywords and self.is_document_url(candidate.url):
            keywords.append(DOCUMENT_KEYWORD)
        return tuple(keywords)

    def classify(self, url: str, keywords: Iterable[str]) -> str:
        """URL path signal wins over keyword signal."""
        path = urlsplit(url).path.lower()
        if any(pattern in path for pattern in self.config.contact_path_patterns):
            return "contact"
        keywords = set(keywords)
        if DOCUMENT_KEYWORD in keywords:
            return "document"
        if CONTACT_KEYWORD in keywords:
            return "contact"
        return "general"

    def compute_score(self, keywords: Iterable[str], link_type: str) -> float:
        weights = self.config.keyword_weights
        total = sum(weights.get(kw, 0.0) for kw in keywords)
        return round(total * self.config.type_multipliers[link_type], SCORE_PRECISION)

    def score(self, candidate: CandidateLink) -> ScoredLink:
        keywords = self.detect_keywords(candidate)
        link_type = self.classify(candidate.url, keywords)
        return ScoredLink(
            url=candidate.url,
            anchor_text=candidate.anchor_text,
            keywords=keywords,
            type=link_type,
            score=self.compute_score(keywords, link_type),
        )

    def rank(self, candidates: Iterable[CandidateLink]) -> list[ScoredLink]:
        """Score every candidate and sort by score, highest first (stable)."""
        scored = [self.score(c) for c in candidates]
        scored.sort(key=lambda link: link.score, reverse=True)
        return scored
