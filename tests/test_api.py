import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from starlette.testclient import TestClient

from api.rate_limit import FixedWindowLimiter
from api.server import create_app
from harvest import DNSResolutionError, FetchError, FetchResult
from orchestrate.config import Settings
from orchestrate.pipeline import LinkPipeline
from schema import ScoredLink
from storage import LinkRepository


PAGE_URL = "https://city.example.gov/finance/"

HTML = """
<html><body>
  <a href="/finance/acfr-2024.pdf">ACFR 2024</a>
  <a href="budget">Annual Budget</a>
  <a href="/contact-us">Contact Us</a>
  <a href="/parks">Parks</a>
</body></html>
"""


def _fetcher(error=None):
    fetcher = MagicMock()
    if error is not None:
        fetcher.fetch = AsyncMock(side_effect=error)
    else:
        fetcher.fetch = AsyncMock(return_value=FetchResult(
            url=PAGE_URL, final_url=PAGE_URL, html=HTML, fetch_method="requests", status_code=200,
        ))
    fetcher.close = AsyncMock()
    return fetcher


@pytest.fixture
def repo(tmp_path):
    repository = LinkRepository.open(tmp_path / "links.db", pool_size=2, page_size=2)
    yield repository
    repository.close()


def _client(repo, fetcher=None, max_requests=1000, **kwargs):
    settings = Settings()
    settings.rate_limit.max_requests = max_requests
    pipeline = LinkPipeline(fetcher or _fetcher(), repo)
    return TestClient(create_app(settings, pipeline=pipeline), **kwargs)


def _seed(repo):
    links = [
        ScoredLink("https://a.gov/acfr.pdf", "ACFR", ("acfr", "document"), "document", 5.4),
        ScoredLink("https://a.gov/budget", "Budget", ("budget",), "general", 2.5),
        ScoredLink("https://a.gov/about", "About", (), "general", 0.5),
    ]
    repo.bulk_upsert((link, PAGE_URL) for link in links)


class TestListLinks:

    def test_envelope_and_pagination(self, repo):
        _seed(repo)
        with _client(repo) as client:
            resp = client.get("/links")
        assert resp.status_code == 200
        body = resp.json()
        assert body["error"] is False
        assert body["message"]
        data = body["data"]
        assert data["totalResultsCount"] == 3
        assert data["totalPages"] == 2
        assert data["page"] == 1
        assert [r["url"] for r in data["results"]] == ["https://a.gov/acfr.pdf", "https://a.gov/budget"]
        assert data["results"][0]["keywords"] == ["acfr", "document"]

    def test_filters(self, repo):
        _seed(repo)
        with _client(repo) as client:
            high = client.get("/links", params={"minScore": "0.7", "page": "1"}).json()["data"]
            kw = client.get("/links", params={"keyword": "budget"}).json()["data"]
        assert high["totalResultsCount"] == 2
        assert {r["url"] for r in kw["results"]} == {"https://a.gov/budget"}

    @pytest.mark.parametrize("params,message", [
        ({"minScore": "abc"}, "Invalid minScore parameter"),
        ({"minScore": "-1"}, "Invalid minScore parameter"),
        ({"page": "0"}, "Invalid page parameter"),
        ({"page": "two"}, "Invalid page parameter"),
        ({"page": "99999999999999999999"}, "Invalid page parameter"),
    ])
    def test_bad_parameters(self, repo, params, message):
        with _client(repo) as client:
            resp = client.get("/links", params=params)
        assert resp.status_code == 400
        assert resp.json() == {"error": True, "message": message, "data": None}


class TestGetLink:

    def test_found(self, repo):
        _seed(repo)
        record = repo.get_by_url("https://a.gov/budget")
        with _client(repo) as client:
            resp = client.get(f"/links/{record.id}")
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == record.id
        assert resp.json()["data"]["score"] == 2.5

    def test_missing(self, repo):
        with _client(repo) as client:
            resp = client.get("/links/01ARZ3NDEKTSV4RRFFQ69G5FAV")
        assert resp.status_code == 404
        assert resp.json() == {"error": True, "message": "Link not found", "data": None}


class TestScrape:

    def test_scrape_summary(self, repo):
        with _client(repo) as client:
            resp = client.post("/scrape", json={"url": PAGE_URL})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["processed"] == 4
        assert data["estimatedScore"] == pytest.approx(5.4 + 3.0 + 2.5)
        assert data["persisted"] == 4
        assert data["invalidUrls"] == 0
        assert repo.query().total == 4

    @pytest.mark.parametrize("payload", [{}, {"url": ""}, {"url": "ftp://a.gov/x"}, {"url": 42}, ["x"]])
    def test_invalid_url(self, repo, payload):
        with _client(repo) as client:
            resp = client.post("/scrape", json=payload)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Valid `url` required"

    def test_non_json_body(self, repo):
        with _client(repo) as client:
            resp = client.post("/scrape", content=b"url=nope", headers={"content-type": "text/plain"})
        assert resp.status_code == 400

    def test_upstream_failure_is_502(self, repo):
        with _client(repo, fetcher=_fetcher(error=FetchError("HTTP 500"))) as client:
            resp = client.post("/scrape", json={"url": PAGE_URL})
        assert resp.status_code == 502
        assert resp.json()["error"] is True

    def test_dns_failure_is_422(self, repo):
        fetcher = _fetcher(error=DNSResolutionError("DNS resolution failed"))
        with _client(repo, fetcher=fetcher) as client:
            resp = client.post("/scrape", json={"url": "https://nowhere.invalid/"})
        assert resp.status_code == 422


class TestErrors:

    def test_unknown_route_uses_envelope(self, repo):
        with _client(repo) as client:
            resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] is True

    def test_unexpected_error_hides_details(self, repo):
        pipeline = LinkPipeline(_fetcher(), repo)
        pipeline.repository = MagicMock()
        pipeline.repository.query.side_effect = RuntimeError("disk on fire")
        app = create_app(Settings(), pipeline=pipeline)
        with TestClient(app, raise_server_exceptions=False) as client:
            resp = client.get("/links")
        assert resp.status_code == 500
        assert resp.json() == {"error": True, "message": "Internal server error", "data": None}


class TestRateLimit:

    def test_limit_exceeded(self, repo):
        with _client(repo, max_requests=2) as client:
            first = client.get("/links")
            client.get("/links")
            third = client.get("/links")
        assert first.headers["RateLimit-Limit"] == "2"
        assert first.headers["RateLimit-Remaining"] == "1"
        assert third.status_code == 429
        assert third.json()["error"] is True

    def test_window_resets(self):
        now = [0.0]
        limiter = FixedWindowLimiter(max_requests=1, window_seconds=60, clock=lambda: now[0])
        assert limiter.hit("a")[0]
        assert not limiter.hit("a")[0]
        assert limiter.hit("b")[0]
        now[0] = 61.0
        assert limiter.hit("a")[0]
