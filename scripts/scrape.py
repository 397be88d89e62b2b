#!/usr/bin/env python3
"""
Scrape one or more pages, rank their links and store them.

Usage:
    python scripts/scrape.py https://example.gov/finance
    python scripts/scrape.py --js --top 20 https://example.gov
    python scripts/scrape.py --config run.yaml --progress url1 url2 url3
    python scripts/scrape.py --no-store --json https://example.gov
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

# Add parent dir to path for the project packages
sys.path.insert(0, str(Path(__file__).parent.parent))

from harvest import FetchError
from orchestrate.config import load_settings
from orchestrate.pipeline import LinkPipeline
from orchestrate.presenter import format_ranked_links, scrape_summary


logger = logging.getLogger("scrape")


async def run(urls, settings, persist, show_progress):
    results = []
    async with LinkPipeline.from_settings(settings, persist=persist) as pipeline:
        tasks = [asyncio.ensure_future(pipeline.scrape(u, persist=persist)) for u in urls]
        bar = tqdm(total=len(tasks), desc="Scraping", unit="page", disable=not show_progress)
        try:
            for url, task in zip(urls, tasks):
                try:
                    results.append((url, await task))
                except FetchError as exc:
                    results.append((url, exc))
                except Exception as exc:
                    # one broken page must not strand the remaining tasks
                    logger.exception("Unexpected error scraping %s", url)
                    results.append((url, exc))
                bar.update(1)
        finally:
            bar.close()
            for task in tasks:
                if not task.done():
                    task.cancel()
    return results


def main():
    parser = argparse.ArgumentParser(description='Scrape pages and rank their links')
    parser.add_argument('urls', nargs='+', help='Page URL(s) to scrape')
    parser.add_argument('--config', help='YAML/JSON run config')
    parser.add_argument('--db', help='SQLite database path (overrides config)')
    parser.add_argument('--js', action='store_true', help='Always render with the browser')
    parser.add_argument('--no-store', action='store_true', help='Rank only, do not persist')
    parser.add_argument('--top', type=int, default=None, help='Show only the top N links')
    parser.add_argument('--json', action='store_true', help='Print JSON instead of a table')
    parser.add_argument('--progress', action='store_true', help='Show a progress bar')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    args = parser.parse_args()

    settings = load_settings(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    if args.db:
        settings.database.path = args.db
    if args.js:
        settings.fetch.js_always = True

    results = asyncio.run(run(args.urls, settings, not args.no_store, args.progress))

    failures = 0
    payload = []
    for url, outcome in results:
        if isinstance(outcome, Exception):
            failures += 1
            if args.json:
                payload.append({'url': url, 'error': str(outcome)})
            else:
                print(f"{url}  FAILED: {outcome}")
            continue
        if args.json:
            links = outcome.links if args.top is None else outcome.links[:args.top]
            payload.append({
                'url': url,
                'summary': scrape_summary(outcome),
                'links': [link.to_dict() for link in links],
            })
        else:
            print(format_ranked_links(outcome, top=args.top))
            print()

    if args.json:
        print(json.dumps(payload, indent=2))

    if failures:
        logger.warning("%d of %d pages failed", failures, len(results))
        sys.exit(1)


if __name__ == '__main__':
    main()
