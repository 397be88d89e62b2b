"""
Link extraction and ranking.

    from links import extract_links, ScoringEngine

    extraction = extract_links(html, "https://example.gov/")
    ranked = ScoringEngine().rank(extraction.candidates)
"""

from .extractor import SCRIPT_REDIRECT_LABEL, extract_links, normalize_url
from .scoring import DEFAULT_KEYWORD_WEIGHTS, ScoringConfig, ScoringEngine


__all__ = [
    'DEFAULT_KEYWORD_WEIGHTS',
    'SCRIPT_REDIRECT_LABEL',
    'ScoringConfig',
    'ScoringEngine',
    'extract_links',
    'normalize_url',
]
