"""
Candidate link extraction from raw HTML.

Finds every <a href>, resolves it against the page URL, drops malformed
hrefs (counted, never fatal) and deduplicates by normalized absolute URL,
keeping the most descriptive anchor text. Inline scripts are scanned for
client-side redirects, since those targets never show up as anchors.
"""

import logging
import re
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from schema import CandidateLink, ExtractionResult


logger = logging.getLogger(__name__)

SCRIPT_REDIRECT_LABEL = "[script redirect]"

NAVIGABLE_SCHEMES = ("http", "https")

# bare or window/document/self/top-qualified `location`, not a longer identifier
_LOCATION = r"""(?<![\w$])(?:(?:window|document|self|top)\s*\.\s*)?location"""

# location.href = "...", window.location = '...', location.assign("..."), location.replace('...')
SCRIPT_REDIRECT_PATTERNS = [
    re.compile(_LOCATION + r"""(?:\s*\.\s*href)?\s*=(?!=)\s*(["'])(?P<target>[^"']+)\1"""),
    re.compile(_LOCATION + r"""\s*\.\s*(?:assign|replace)\(\s*(["'])(?P<target>[^"']+)\1\s*\)"""),
]


class MalformedURLError(ValueError):
    """An href that cannot be turned into an absolute URL."""


def normalize_url(url: str) -> str:
    """
    Canonical form used as link identity.

    Lower-cases scheme and host, drops the fragment, keeps path and query as-is.
    Raises MalformedURLError for anything that does not parse.
    """
    try:
        parts = urlsplit(url.strip())
        # .port raises ValueError for non-numeric or out-of-range ports
        parts.port
    except ValueError as exc:
        raise MalformedURLError(str(exc)) from exc

    scheme = parts.scheme.lower()
    netloc = parts.netloc
    if scheme in NAVIGABLE_SCHEMES:
        if not parts.hostname:
            raise MalformedURLError(f"missing host: {url!r}")
        host = parts.hostname
        if ":" in host:
            host = f"[{host}]"
        userinfo, _, _ = netloc.rpartition("@")
        netloc = host if not userinfo else f"{userinfo}@{host}"
        if parts.port is not None:
            netloc = f"{netloc}:{parts.port}"
    path = parts.path or ("/" if scheme in NAVIGABLE_SCHEMES else "")
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def resolve_href(href: str, base_url: str) -> str:
    """Resolve an href against base_url and normalize it."""
    href = href.strip()
    try:
        absolute = urljoin(base_url, href)
    except ValueError as exc:
        raise MalformedURLError(str(exc)) from exc
    return normalize_url(absolute)


def _anchor_text(tag) -> str:
    return " ".join(tag.get_text(" ", strip=True).split())


def _document_base(soup: BeautifulSoup, page_url: str) -> str:
    base = soup.find("base", href=True)
    if base:
        try:
            return urljoin(page_url, base["href"].strip())
        except ValueError:
            return page_url
    return page_url


def find_script_redirects(script_text: str) -> list[str]:
    """Return raw redirect targets found in a script body, in source order."""
    found = []
    for pattern in SCRIPT_REDIRECT_PATTERNS:
        for match in pattern.finditer(script_text):
            found.append((match.start(), match.group("target")))
    found.sort(key=lambda item: item[0])
    return [target for _, target in found]


def extract_links(html: str, base_url: str) -> ExtractionResult:
    """
    Extract deduplicated candidate links from a page.

    Args:
        html: Raw or rendered HTML
        base_url: URL the HTML was fetched from

    Returns:
        ExtractionResult with candidates in scan order and counters for
        malformed (invalid) and non-navigable (skipped) hrefs
    """
    result = ExtractionResult()
    if not html:
        return result

    soup = BeautifulSoup(html, "lxml")
    base = _document_base(soup, base_url)
    unique: dict[str, CandidateLink] = {}

    for tag in soup.find_all("a", href=True):
        href = tag["href"]
        try:
            url = resolve_href(href, base)
        except MalformedURLError:
            result.invalid_url_count += 1
            logger.debug("Invalid URL skipped: %r", href)
            continue

        if urlsplit(url).scheme not in NAVIGABLE_SCHEMES:
            result.skipped_count += 1
            continue

        text = _anchor_text(tag)
        existing = unique.get(url)
        if existing is None:
            unique[url] = CandidateLink(url=url, anchor_text=text)
        elif len(text) > len(existing.anchor_text):
            existing.anchor_text = text

    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        body = script.string or script.get_text()
        if not body:
            continue
        for target in find_script_redirects(body):
            try:
                url = resolve_href(target, base)
            except MalformedURLError:
                result.invalid_url_count += 1
                logger.debug("Invalid script redirect skipped: %r", target)
                continue
            if urlsplit(url).scheme not in NAVIGABLE_SCHEMES:
                result.skipped_count += 1
                continue
            if url not in unique:
                unique[url] = CandidateLink(url=url, anchor_text=SCRIPT_REDIRECT_LABEL)

    result.candidates = list(unique.values())
    return result
