#!/usr/bin/env python3
"""
Create (or recreate) the sharded link store.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --db /data/links.db --reset
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent dir to path for the project packages
sys.path.insert(0, str(Path(__file__).parent.parent))

from orchestrate.config import load_settings
from storage import LinkRepository


def main():
    parser = argparse.ArgumentParser(description='Initialize the link database')
    parser.add_argument('--config', help='YAML/JSON run config')
    parser.add_argument('--db', help='SQLite database path (overrides config)')
    parser.add_argument('--reset', action='store_true', help='Drop existing shards and view first')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    settings = load_settings(args.config)
    db_path = args.db or settings.database.path
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    repo = LinkRepository.open(db_path, pool_size=1, initialize=False)
    try:
        repo.initialize(reset=args.reset)
        counts = repo.count_by_shard()
    finally:
        repo.close()

    print(f"Initialized {db_path}")
    for shard, count in counts.items():
        print(f"  {shard:<7} {count:>8} links")


if __name__ == '__main__':
    main()
