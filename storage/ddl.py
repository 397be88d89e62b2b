"""
Schema for the sharded link store.

Three tables with identical columns (links_high, links_medium, links_low),
each range-checked on score, plus a `links` view over their union. Rows
are routed to a shard by the repository, not by triggers.
"""

from __future__ import annotations

import logging
import sqlite3

from .shards import SHARD_BOUNDS, SHARDS, shard_table


logger = logging.getLogger(__name__)

VIEW_NAME = "links"

COLUMNS = ("id", "url", "anchor_text", "score", "keywords", "parent_url", "type", "crawled_at")


def _score_check(shard: str) -> str:
    lower, upper = SHARD_BOUNDS[shard]
    if upper is None:
        return f"score >= {lower}"
    if shard == "low":
        return f"score >= 0 AND score < {upper}"
    return f"score >= {lower} AND score < {upper}"


def shard_table_sql(shard: str) -> str:
    table = shard_table(shard)
    return f"""
    CREATE TABLE IF NOT EXISTS {table} (
        id TEXT PRIMARY KEY,
        url TEXT NOT NULL UNIQUE,
        anchor_text TEXT NOT NULL,
        score REAL NOT NULL CHECK ({_score_check(shard)}),
        keywords TEXT NOT NULL CHECK (json_valid(keywords) AND json_type(keywords) = 'array'),
        parent_url TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('document', 'contact', 'general')),
        crawled_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX IF NOT EXISTS idx_score_{shard} ON {table} (score);
    CREATE INDEX IF NOT EXISTS idx_type_{shard} ON {table} (type);
    CREATE INDEX IF NOT EXISTS idx_parent_url_{shard} ON {table} (parent_url);
    CREATE INDEX IF NOT EXISTS idx_score_parent_url_{shard} ON {table} (score, parent_url);
    """


def view_sql() -> str:
    cols = ", ".join(COLUMNS)
    selects = "\n        UNION ALL\n        ".join(
        f"SELECT {cols}, '{shard}' AS shard FROM {shard_table(shard)}" for shard in SHARDS
    )
    return f"""
    CREATE VIEW IF NOT EXISTS {VIEW_NAME} AS
        {selects};
    """


def initialize_schema(conn: sqlite3.Connection, reset: bool = False) -> None:
    """Create shard tables, indexes and the union view."""
    script = []
    if reset:
        script.append(f"DROP VIEW IF EXISTS {VIEW_NAME};")
        script.extend(f"DROP TABLE IF EXISTS {shard_table(s)};" for s in SHARDS)
    script.extend(shard_table_sql(s) for s in SHARDS)
    script.append(view_sql())
    conn.executescript("\n".join(script))
    logger.debug("Schema initialized (reset=%s)", reset)


def verify_schema(conn: sqlite3.Connection) -> None:
    """Raise RuntimeError unless all three shard tables and the view exist."""
    tables = {
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name LIKE 'links\\_%' ESCAPE '\\'"
        )
    }
    expected = {shard_table(s) for s in SHARDS}
    if tables != expected:
        raise RuntimeError(
            f"Expected {len(expected)} shard tables, found {len(tables)}: {sorted(tables)}"
        )
    view = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'view' AND name = ?", (VIEW_NAME,)
    ).fetchone()
    if view is None:
        raise RuntimeError(f"View {VIEW_NAME!r} is missing")
