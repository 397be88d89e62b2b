"""
Tests for scripts/scrape.py.

The pipeline is built around a stand-in fetcher, so no browser or
database is touched.
"""

import asyncio
import json
import sqlite3
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

# Ensure project root and scripts dir on path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "scripts"))

import pytest

import scrape
from harvest import FetchError, FetchResult
from orchestrate.config import Settings
from orchestrate.pipeline import LinkPipeline


GOOD_URL = "https://city.example.gov/finance/"
BROKEN_URL = "https://city.example.gov/locked/"
MISSING_URL = "https://city.example.gov/missing/"

HTML = '<html><body><a href="/finance/acfr-2024.pdf">ACFR 2024</a></body></html>'


def _fetcher(errors):
    async def fetch(url):
        if url in errors:
            raise errors[url]
        return FetchResult(url=url, final_url=url, html=HTML, fetch_method="requests", status_code=200)

    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(side_effect=fetch)
    fetcher.close = AsyncMock()
    return fetcher


def _pipeline(errors):
    return LinkPipeline(_fetcher(errors), repository=None)


class TestRun:

    def test_unexpected_error_does_not_abort_remaining_pages(self):
        errors = {
            BROKEN_URL: sqlite3.OperationalError("database is locked"),
            MISSING_URL: FetchError("HTTP 404", url=MISSING_URL, status_code=404),
        }
        pipeline = _pipeline(errors)
        urls = [BROKEN_URL, GOOD_URL, MISSING_URL]

        with patch.object(scrape.LinkPipeline, "from_settings", return_value=pipeline):
            results = asyncio.run(scrape.run(urls, Settings(), persist=False, show_progress=False))

        assert [url for url, _ in results] == urls
        outcomes = dict(results)
        assert isinstance(outcomes[BROKEN_URL], sqlite3.OperationalError)
        assert isinstance(outcomes[MISSING_URL], FetchError)
        assert outcomes[GOOD_URL].state == "done"
        assert [link.url for link in outcomes[GOOD_URL].links] == [
            "https://city.example.gov/finance/acfr-2024.pdf"
        ]
        pipeline.fetcher.close.assert_awaited_once()


class TestMain:

    def test_failures_reported_and_exit_nonzero(self, monkeypatch, capsys):
        pipeline = _pipeline({BROKEN_URL: sqlite3.OperationalError("database is locked")})
        monkeypatch.setattr(sys, "argv", ["scrape.py", "--no-store", "--json", BROKEN_URL, GOOD_URL])

        with patch.object(scrape, "load_settings", return_value=Settings()), \
                patch.object(scrape.LinkPipeline, "from_settings", return_value=pipeline):
            with pytest.raises(SystemExit) as excinfo:
                scrape.main()

        assert excinfo.value.code == 1
        payload = json.loads(capsys.readouterr().out)
        assert payload[0] == {"url": BROKEN_URL, "error": "database is locked"}
        assert payload[1]["url"] == GOOD_URL
        assert payload[1]["summary"]["processed"] == 1
