"""
Presentation helpers for pipeline output.

Keeps the HTTP adapter and the CLI focused on I/O while this module builds
the response envelope and the printable summaries.
"""

from __future__ import annotations

from schema import LinkPage, ScrapeResult, StoredLinkRecord


def envelope(data=None, message: str = "", error: bool = False) -> dict:
    """Standard response body: {error, message, data}."""
    return {"error": error, "message": message, "data": data}


def record_to_dict(record: StoredLinkRecord) -> dict:
    data = record.to_dict()
    data["keywords"] = list(record.keywords)
    return data


def page_to_dict(page: LinkPage) -> dict:
    return {
        "totalResultsCount": page.total,
        "results": [record_to_dict(r) for r in page.results],
        "page": page.page,
        "totalPages": page.total_pages,
    }


def scrape_summary(result: ScrapeResult) -> dict:
    report = result.persistence
    return {
        "processed": len(result.links),
        "estimatedScore": round(result.total_score, 6),
        "invalidUrls": result.invalid_url_count,
        "persisted": report.persisted if report else 0,
        "failed": report.failed if report else 0,
        "fetchMethod": result.fetch_method,
        "timingsMs": dict(result.timings_ms),
    }


def format_ranked_links(result: ScrapeResult, top: int | None = None) -> str:
    """Plain-text table of the ranked links for terminal output."""
    links = result.links if top is None else result.links[:top]
    lines = [f"{result.url}  ({len(result.links)} links, {result.invalid_url_count} invalid)"]
    if not links:
        lines.append("  (no links)")
        return "\n".join(lines)
    for link in links:
        keywords = ",".join(link.keywords) or "-"
        anchor = link.anchor_text if len(link.anchor_text) <= 40 else link.anchor_text[:37] + "..."
        lines.append(f"  {link.score:7.2f}  {link.type:<8}  {keywords:<28}  {anchor:<40}  {link.url}")
    return "\n".join(lines)
