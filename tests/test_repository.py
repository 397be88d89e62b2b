"""
Tests for the sharded link store (storage/).

Uses a file database under tmp_path: pooled connections are independent,
so an in-memory database would not be shared between them.
"""

import re
import sqlite3
import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from schema import ScoredLink
from storage import LinkRepository, determine_shard, new_ulid
from storage.shards import shards_for_min_score


PARENT = "https://city.example.gov/finance"


def _link(url, score, keywords=("budget",), type="general", anchor="Link"):
    return ScoredLink(url=url, anchor_text=anchor, keywords=tuple(keywords), type=type, score=score)


@pytest.fixture
def repo(tmp_path):
    repository = LinkRepository.open(tmp_path / "links.db", pool_size=4, page_size=10)
    yield repository
    repository.close()


def _shard_rows(repo, table):
    with repo.pool.connection() as conn:
        return conn.execute(f"SELECT url, id FROM {table}").fetchall()


class TestShardRouting:

    @pytest.mark.parametrize("score,shard", [
        (0.0, "low"),
        (0.29, "low"),
        (0.3, "medium"),
        (0.69, "medium"),
        (0.7, "high"),
        (5.4, "high"),
    ])
    def test_boundaries(self, score, shard):
        assert determine_shard(score) == shard

    @pytest.mark.parametrize("score", [-0.1, float("nan"), float("inf"), None])
    def test_rejects_bad_scores(self, score):
        with pytest.raises(ValueError):
            determine_shard(score)

    def test_min_score_prunes_shards(self):
        assert shards_for_min_score(0.7) == ["high"]
        assert shards_for_min_score(0.5) == ["high", "medium"]
        assert shards_for_min_score(0.0) == ["high", "medium", "low"]


class TestUpsert:

    def test_insert_lands_in_one_shard(self, repo):
        assert repo.upsert_one(_link("https://a.gov/acfr.pdf", 5.4, ("acfr", "document"), "document"), PARENT) == "inserted"
        assert repo.count_by_shard() == {"high": 1, "medium": 0, "low": 0}

    def test_upsert_is_idempotent(self, repo):
        link = _link("https://a.gov/budget", 2.5)
        repo.upsert_one(link, PARENT)
        first = repo.get_by_url(link.url)

        assert repo.upsert_one(link, PARENT) == "updated"
        second = repo.get_by_url(link.url)

        assert second.id == first.id
        assert sum(repo.count_by_shard().values()) == 1

    def test_update_refreshes_score_and_keeps_provenance(self, repo):
        repo.upsert_one(_link("https://a.gov/budget", 2.5, anchor="Budget"), PARENT)
        repo.upsert_one(_link("https://a.gov/budget", 3.0, anchor="Other"), "https://elsewhere.gov/")

        record = repo.get_by_url("https://a.gov/budget")
        assert record.score == 3.0
        assert record.anchor_text == "Budget"
        assert record.parent_url == PARENT

    def test_score_change_moves_shard(self, repo):
        url = "https://a.gov/minutes"
        repo.upsert_one(_link(url, 0.1, keywords=()), PARENT)
        original = repo.get_by_url(url)
        assert original.shard == "low"

        assert repo.upsert_one(_link(url, 2.0, keywords=("contact",), type="contact"), PARENT) == "moved"

        moved = repo.get_by_url(url)
        assert moved.shard == "high"
        assert moved.id == original.id
        assert moved.keywords == ["contact"]
        assert _shard_rows(repo, "links_low") == []
        assert len(_shard_rows(repo, "links_high")) == 1

    def test_keywords_round_trip(self, repo):
        repo.upsert_one(_link("https://a.gov/x", 5.0, ("acfr", "finance director")), PARENT)
        assert repo.get_by_url("https://a.gov/x").keywords == ["acfr", "finance director"]

    def test_ids_are_ulids(self, repo):
        repo.upsert_one(_link("https://a.gov/x", 1.0), PARENT)
        assert re.fullmatch(r"[0-9A-Z]{26}", repo.get_by_url("https://a.gov/x").id)

    def test_invalid_link_rejected_without_write(self, repo):
        with pytest.raises(ValueError):
            repo.upsert_one(_link("https://a.gov/x", 1.0, type="spam"), PARENT)
        assert sum(repo.count_by_shard().values()) == 0


class TestBulkUpsert:

    def test_bulk_counts(self, repo):
        items = [
            (_link("https://a.gov/acfr.pdf", 5.4), PARENT),
            (_link("https://a.gov/about", 0.5), PARENT),
            (_link("https://a.gov/parks", 0.0, keywords=()), PARENT),
        ]
        report = repo.bulk_upsert(items)
        assert (report.inserted, report.updated, report.moved, report.failed) == (3, 0, 0, 0)
        assert repo.count_by_shard() == {"high": 1, "medium": 1, "low": 1}

        again = repo.bulk_upsert(items)
        assert again.updated == 3
        assert again.persisted == 3

    def test_bad_row_does_not_abort_batch(self, repo):
        items = [
            (_link("https://a.gov/one", 1.0), PARENT),
            (_link("https://a.gov/bad", 1.0, anchor=None), PARENT),   # NOT NULL violation
            (_link("https://a.gov/spam", 1.0, type="spam"), PARENT),  # unknown type
            (_link("https://a.gov/neg", -1.0), PARENT),               # no shard
            (_link("https://a.gov/two", 0.4), PARENT),
        ]
        report = repo.bulk_upsert(items)

        assert report.persisted == 2
        assert report.failed == 3
        assert set(report.failed_urls) == {"https://a.gov/bad", "https://a.gov/spam", "https://a.gov/neg"}
        assert repo.get_by_url("https://a.gov/one") is not None
        assert repo.get_by_url("https://a.gov/two") is not None
        assert repo.get_by_url("https://a.gov/bad") is None

    def test_bulk_move_leaves_no_duplicates(self, repo):
        url = "https://a.gov/contact"
        repo.bulk_upsert([(_link(url, 0.2), PARENT)])
        report = repo.bulk_upsert([(_link(url, 3.0, type="contact"), PARENT)])

        assert report.moved == 1
        with repo.pool.connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM links WHERE url = ?", (url,)).fetchone()[0] == 1

    def test_empty_batch(self, repo):
        assert repo.bulk_upsert([]).persisted == 0


class TestQuery:

    @pytest.fixture
    def seeded(self, repo):
        items = [
            (_link("https://a.gov/acfr.pdf", 5.4, ("acfr", "document"), "document"), PARENT),
            (_link("https://a.gov/budget", 2.5, ("budget",)), PARENT),
            (_link("https://a.gov/mid", 0.5, ()), "https://other.gov/page"),
            (_link("https://a.gov/low", 0.1, ()), PARENT),
        ]
        repo.bulk_upsert(items)
        return repo

    def test_min_score_only_reads_high_shard(self, seeded):
        page = seeded.query(min_score=0.7)
        assert [r.url for r in page.results] == ["https://a.gov/acfr.pdf", "https://a.gov/budget"]
        assert all(r.shard == "high" for r in page.results)
        assert page.total == 2

    def test_descending_score_order(self, seeded):
        scores = [r.score for r in seeded.query().results]
        assert scores == sorted(scores, reverse=True)
        assert len(scores) == 4

    def test_keyword_filter(self, seeded):
        page = seeded.query(keyword="acfr")
        assert [r.url for r in page.results] == ["https://a.gov/acfr.pdf"]

    def test_keyword_filter_escapes_wildcards(self, seeded):
        assert seeded.query(keyword="%").total == 0

    def test_parent_url_prefix(self, seeded):
        page = seeded.query(parent_url="https://other.gov")
        assert [r.url for r in page.results] == ["https://a.gov/mid"]

    def test_pagination(self, tmp_path):
        repo = LinkRepository.open(tmp_path / "paged.db", page_size=2)
        try:
            repo.bulk_upsert([(_link(f"https://a.gov/{i}", float(i)), PARENT) for i in range(5)])
            first = repo.query(page=1)
            third = repo.query(page=3)
            beyond = repo.query(page=9)
        finally:
            repo.close()

        assert [r.score for r in first.results] == [4.0, 3.0]
        assert first.total == 5
        assert first.total_pages == 3
        assert [r.score for r in third.results] == [0.0]
        assert beyond.results == []

    def test_invalid_page(self, repo):
        with pytest.raises(ValueError):
            repo.query(page=0)

    def test_page_offset_must_fit_sqlite_integer(self, repo):
        assert (repo.max_page - 1) * repo.page_size <= 2 ** 63 - 1
        assert repo.query(page=repo.max_page).results == []
        with pytest.raises(ValueError):
            repo.query(page=repo.max_page + 1)
        with pytest.raises(ValueError):
            repo.query(page=99999999999999999999)

    def test_get_by_id(self, seeded):
        record = seeded.get_by_url("https://a.gov/budget")
        assert seeded.get_by_id(record.id).url == "https://a.gov/budget"
        assert seeded.get_by_id(new_ulid()) is None


class TestConnectionPool:

    @pytest.mark.parametrize("path", [":memory:", ""])
    def test_private_databases_rejected(self, path):
        with pytest.raises(ValueError):
            LinkRepository.open(path)

    def test_readers_see_writer_schema(self, tmp_path):
        repository = LinkRepository.open(tmp_path / "shared.db", pool_size=3)
        try:
            repository.upsert_one(_link("https://a.gov/x", 1.0), PARENT)
            with repository.pool.connection() as first, repository.pool.connection() as second:
                for conn in (first, second):
                    assert conn.execute("SELECT COUNT(*) FROM links").fetchone()[0] == 1
        finally:
            repository.close()


class TestSchema:

    def test_shard_check_constraint_enforced(self, repo):
        with repo.pool.writer() as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO links_high (id, url, anchor_text, score, keywords, parent_url, type) "
                    "VALUES ('X', 'https://a.gov/', '', 0.1, '[]', 'p', 'general')"
                )

    def test_reset_drops_rows(self, repo):
        repo.upsert_one(_link("https://a.gov/x", 1.0), PARENT)
        repo.initialize(reset=True)
        assert repo.count_by_shard() == {"high": 0, "medium": 0, "low": 0}

    def test_clear(self, repo):
        repo.upsert_one(_link("https://a.gov/x", 1.0), PARENT)
        repo.clear()
        assert repo.query().total == 0
