"""
Link persistence over the score-sharded store.

Every write computes the target shard from the score first. A url lives in
exactly one shard: when a re-scrape moves its score across a boundary the
row is deleted from the old shard and re-inserted (same id) in the new one
inside a single savepoint, so the move happens completely or not at all.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from schema import LINK_TYPES, LinkPage, ScoredLink, StoredLinkRecord, UpsertReport

from .connection import ConnectionPool
from .ddl import COLUMNS, initialize_schema, verify_schema
from .ids import new_ulid
from .shards import SHARDS, determine_shard, shard_table, shards_for_min_score


logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

# largest value SQLite accepts as a bound integer parameter
SQLITE_MAX_INT = 2 ** 63 - 1

INSERTED = "inserted"
UPDATED = "updated"
MOVED = "moved"

_SELECT_COLUMNS = ", ".join(COLUMNS) + ", shard"


def _utc_timestamp() -> str:
    # same layout as SQLite's CURRENT_TIMESTAMP
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def serialize_keywords(keywords: Iterable[str]) -> str:
    return json.dumps([str(k) for k in keywords])


def deserialize_keywords(raw: str | None) -> list[str]:
    if not raw:
        return []
    data = json.loads(raw)
    return [str(k) for k in data] if isinstance(data, list) else []


def _validate(link: ScoredLink, parent_url: str) -> None:
    if not link.url:
        raise ValueError("link url is empty")
    if link.type not in LINK_TYPES:
        raise ValueError(f"unknown link type {link.type!r}")
    if not parent_url:
        raise ValueError("parent_url is empty")
    determine_shard(link.score)


def _row_to_record(row: sqlite3.Row) -> StoredLinkRecord:
    return StoredLinkRecord(
        id=row["id"],
        url=row["url"],
        anchor_text=row["anchor_text"],
        score=row["score"],
        keywords=deserialize_keywords(row["keywords"]),
        parent_url=row["parent_url"],
        type=row["type"],
        crawled_at=str(row["crawled_at"]),
        shard=row["shard"],
    )


class LinkRepository:
    """Upserts and queries scored links."""

    def __init__(self, pool: ConnectionPool, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.pool = pool
        self.page_size = page_size

    @classmethod
    def open(
        cls,
        path: str | Path,
        pool_size: int = 20,
        timeout: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        initialize: bool = True,
    ) -> "LinkRepository":
        repo = cls(ConnectionPool(path, size=pool_size, timeout=timeout), page_size=page_size)
        if initialize:
            repo.initialize()
        return repo

    @property
    def max_page(self) -> int:
        """Highest page whose OFFSET still fits in a SQLite integer."""
        return SQLITE_MAX_INT // self.page_size + 1

    def initialize(self, reset: bool = False) -> None:
        with self.pool.writer() as conn:
            initialize_schema(conn, reset=reset)
            verify_schema(conn)

    def close(self) -> None:
        self.pool.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _upsert(self, conn: sqlite3.Connection, link: ScoredLink, parent_url: str) -> str:
        _validate(link, parent_url)
        shard = determine_shard(link.score)
        table = shard_table(shard)
        keywords = serialize_keywords(link.keywords)
        now = _utc_timestamp()

        existing = conn.execute(
            f"SELECT {_SELECT_COLUMNS} FROM links WHERE url = ?", (link.url,)
        ).fetchall()

        if not existing:
            conn.execute(
                f"""
                INSERT INTO {table} (id, url, anchor_text, score, keywords, parent_url, type, crawled_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    score = excluded.score,
                    keywords = excluded.keywords,
                    type = excluded.type,
                    crawled_at = excluded.crawled_at
                """,
                (new_ulid(), link.url, link.anchor_text, link.score, keywords, parent_url, link.type, now),
            )
            return INSERTED

        stale = [row for row in existing if row["shard"] != shard]
        current = [row for row in existing if row["shard"] == shard]

        for row in stale:
            conn.execute(f"DELETE FROM {shard_table(row['shard'])} WHERE url = ?", (link.url,))

        if current:
            conn.execute(
                f"UPDATE {table} SET score = ?, keywords = ?, type = ?, crawled_at = ? WHERE url = ?",
                (link.score, keywords, link.type, now, link.url),
            )
        else:
            keep = existing[0]
            conn.execute(
                f"""
                INSERT INTO {table} (id, url, anchor_text, score, keywords, parent_url, type, crawled_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (keep["id"], link.url, keep["anchor_text"], link.score, keywords,
                 keep["parent_url"], link.type, now),
            )

        if stale:
            logger.debug(
                "Moved %s from %s to %s", link.url, ",".join(r["shard"] for r in stale), shard
            )
            return MOVED
        return UPDATED

    def upsert_one(self, link: ScoredLink, parent_url: str) -> str:
        """
        Insert or update one link. Returns 'inserted', 'updated' or 'moved'.

        Raises ValueError for malformed links and sqlite3.Error on write
        failure; nothing is written in either case.
        """
        with self.pool.writer() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                outcome = self._upsert(conn, link, parent_url)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        return outcome

    @staticmethod
    def _record_failure(report: UpsertReport, link, exc: Exception) -> None:
        url = getattr(link, "url", None) or "<unknown>"
        report.failed += 1
        report.failed_urls.append(url)
        logger.warning("Failed to upsert link %s: %s", url, exc)

    def bulk_upsert(self, items: Iterable[tuple[ScoredLink, str]]) -> UpsertReport:
        """
        Upsert many (link, parent_url) pairs.

        Input is grouped by target shard; each shard's rows are written in
        one transaction. A bad row is rolled back to its savepoint, logged
        and counted, and the rest of the batch carries on.
        """
        report = UpsertReport()
        groups: dict[str, list[tuple[ScoredLink, str]]] = defaultdict(list)

        for link, parent_url in items:
            try:
                groups[determine_shard(link.score)].append((link, parent_url))
            except (ValueError, TypeError, AttributeError) as exc:
                self._record_failure(report, link, exc)

        if not groups:
            return report

        with self.pool.writer() as conn:
            for shard in SHARDS:
                batch = groups.get(shard)
                if not batch:
                    continue
                conn.execute("BEGIN IMMEDIATE")
                try:
                    for link, parent_url in batch:
                        conn.execute("SAVEPOINT link_row")
                        try:
                            outcome = self._upsert(conn, link, parent_url)
                        except (sqlite3.Error, ValueError, TypeError, AttributeError) as exc:
                            conn.execute("ROLLBACK TO link_row")
                            conn.execute("RELEASE link_row")
                            self._record_failure(report, link, exc)
                            continue
                        conn.execute("RELEASE link_row")
                        if outcome == INSERTED:
                            report.inserted += 1
                        elif outcome == MOVED:
                            report.moved += 1
                        else:
                            report.updated += 1
                    conn.execute("COMMIT")
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise

        logger.debug(
            "Bulk upsert: %d inserted, %d updated, %d moved, %d failed",
            report.inserted, report.updated, report.moved, report.failed,
        )
        return report

    def clear(self) -> None:
        """Delete every stored link."""
        with self.pool.writer() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for shard in SHARDS:
                    conn.execute(f"DELETE FROM {shard_table(shard)}")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        min_score: float = 0.0,
        keyword: str | None = None,
        parent_url: str | None = None,
        page: int = 1,
    ) -> LinkPage:
        """
        Filtered, score-descending page of links across all shards.

        Args:
            min_score: only records with score >= min_score
            keyword: substring of the serialized keyword list
            parent_url: prefix of the page the link was found on
            page: 1-based page number
        """
        if page < 1:
            raise ValueError("page must be >= 1")
        if page > self.max_page:
            raise ValueError(f"page must be <= {self.max_page}")
        min_score = float(min_score)

        cols = ", ".join(COLUMNS)
        union = "\n            UNION ALL\n            ".join(
            f"SELECT {cols}, '{shard}' AS shard FROM {shard_table(shard)} WHERE score >= :min_score"
            for shard in shards_for_min_score(min_score)
        )

        filters = []
        params: dict = {"min_score": min_score}
        if keyword:
            filters.append("keywords LIKE :keyword ESCAPE '\\'")
            params["keyword"] = f"%{_escape_like(keyword.lower())}%"
        if parent_url:
            filters.append("substr(parent_url, 1, length(:parent_url)) = :parent_url")
            params["parent_url"] = parent_url
        where = f"WHERE {' AND '.join(filters)}" if filters else ""

        base = f"""
            WITH combined_links AS (
            {union}
            )
        """
        params.update(limit=self.page_size, offset=(page - 1) * self.page_size)

        with self.pool.connection() as conn:
            rows = conn.execute(
                f"""{base}
                SELECT {_SELECT_COLUMNS} FROM combined_links
                {where}
                ORDER BY score DESC, id ASC
                LIMIT :limit OFFSET :offset
                """,
                params,
            ).fetchall()
            total = conn.execute(
                f"{base} SELECT COUNT(*) FROM combined_links {where}", params
            ).fetchone()[0]

        return LinkPage(
            results=[_row_to_record(r) for r in rows],
            total=total,
            page=page,
            page_size=self.page_size,
        )

    def get_by_id(self, link_id: str) -> StoredLinkRecord | None:
        with self.pool.connection() as conn:
            row = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM links WHERE id = ?", (link_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def get_by_url(self, url: str) -> StoredLinkRecord | None:
        with self.pool.connection() as conn:
            row = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM links WHERE url = ?", (url,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def count_by_shard(self) -> dict[str, int]:
        counts = {}
        with self.pool.connection() as conn:
            for shard in SHARDS:
                counts[shard] = conn.execute(
                    f"SELECT COUNT(*) FROM {shard_table(shard)}"
                ).fetchone()[0]
        return counts
