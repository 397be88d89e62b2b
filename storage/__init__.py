"""
Score-sharded SQLite storage for scored links.

    from storage import LinkRepository

    repo = LinkRepository.open("links.db")
    report = repo.bulk_upsert((link, "https://example.gov/") for link in ranked)
    page = repo.query(min_score=0.7)
"""

from .connection import ConnectionPool
from .ddl import initialize_schema, verify_schema
from .ids import new_ulid
from .repository import LinkRepository
from .shards import SHARDS, determine_shard


__all__ = [
    'ConnectionPool',
    'LinkRepository',
    'SHARDS',
    'determine_shard',
    'initialize_schema',
    'new_ulid',
    'verify_schema',
]
