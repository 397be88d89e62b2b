"""
Detect if fetched HTML needs a browser render.

Checks the body returned by the direct request for signs that the real
content (and its links) only appear after client-side JavaScript runs.
"""

import re
from dataclasses import dataclass, field


@dataclass
class RenderCheck:
    """Result of the render-need check."""
    render_required: bool
    signals: list[str] = field(default_factory=list)


HTML_ROOT_PATTERN = re.compile(r'<html[\s>]', re.IGNORECASE)

# Empty root containers used by SPAs
EMPTY_ROOT_PATTERNS = [
    r'<div\s+id=["\']root["\']\s*>\s*</div>',
    r'<div\s+id=["\']app["\']\s*>\s*</div>',
    r'<div\s+id=["\']__next["\']\s*>\s*</div>',
    r'<div\s+id=["\']__nuxt["\']\s*>\s*</div>',
    r'<div\s+id=["\']main-app["\']\s*>\s*</div>',
    r'<div\s+id=["\']application["\']\s*>\s*</div>',
    r'<app-root[^>]*>\s*</app-root>',
]

# Loading placeholders left in the static shell
LOADING_PATTERNS = [
    r'<div[^>]+(?:id|class)=["\'][^"\']*\b(?:loading|spinner|preloader)\b[^"\']*["\'][^>]*>\s*(?:loading\W*)?</div>',
    r'>\s*loading\s*(?:\.\.\.|…)?\s*</',
]

_LOCATION = r'(?<![\w$])(?:(?:window|document|self|top)\s*\.\s*)?location'

# Client-side redirect scripts
CLIENT_REDIRECT_PATTERNS = [
    _LOCATION + r'(?:\s*\.\s*href)?\s*=(?!=)\s*["\']',
    _LOCATION + r'\s*\.\s*(?:assign|replace)\(',
    r'<meta[^>]+http-equiv=["\']?refresh',
]

# Noscript warnings
NOSCRIPT_PATTERNS = [
    r'<noscript>.*?(?:enable|requires?|need).*?javascript.*?</noscript>',
]


def _first_match(patterns: list[str], html: str, flags: int = re.IGNORECASE) -> str | None:
    for pattern in patterns:
        if re.search(pattern, html, flags):
            return pattern
    return None


def detect_render_need(html: str | None, min_length: int = 500) -> RenderCheck:
    """
    Decide whether a statically fetched page must be rendered in a browser.

    Any single signal is enough: the page is too short, has no <html>
    root, or carries a client-rendering placeholder.

    Args:
        html: Body returned by the direct request
        min_length: Minimum number of characters for usable content

    Returns:
        RenderCheck with the triggering signals
    """
    if not html:
        return RenderCheck(render_required=True, signals=['empty'])

    signals = []

    if len(html) < min_length:
        signals.append(f'too_short:{len(html)}')

    if not HTML_ROOT_PATTERN.search(html):
        signals.append('no_html_root')

    if _first_match(EMPTY_ROOT_PATTERNS, html):
        signals.append('empty_app_root')

    if _first_match(LOADING_PATTERNS, html):
        signals.append('loading_placeholder')

    if _first_match(CLIENT_REDIRECT_PATTERNS, html):
        signals.append('client_redirect')

    if _first_match(NOSCRIPT_PATTERNS, html, re.IGNORECASE | re.DOTALL):
        signals.append('noscript_warning')

    return RenderCheck(render_required=bool(signals), signals=signals)


def is_content_sufficient(html: str | None, min_length: int = 500) -> bool:
    """
    Check rendered output. Placeholders are not re-checked here: a rendered
    DOM legitimately keeps its redirect scripts and loader markup.
    """
    if not html or len(html) < min_length:
        return False
    return bool(HTML_ROOT_PATTERN.search(html))


def needs_render(html: str | None, min_length: int = 500) -> bool:
    """Quick boolean form of detect_render_need."""
    return detect_render_need(html, min_length).render_required
