#!/usr/bin/env python3
"""
Serve the link API.

Usage:
    python scripts/serve.py
    python scripts/serve.py --config run.yaml --host 0.0.0.0 --port 8080
"""

import argparse
import sys
from pathlib import Path

import uvicorn

# Add parent dir to path for the project packages
sys.path.insert(0, str(Path(__file__).parent.parent))

from api.server import configure_logging, create_app
from orchestrate.config import load_settings


def main():
    parser = argparse.ArgumentParser(description='Run the link HTTP API')
    parser.add_argument('--config', help='YAML/JSON run config')
    parser.add_argument('--db', help='SQLite database path (overrides config)')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=8000)
    args = parser.parse_args()

    settings = load_settings(args.config)
    if args.db:
        settings.database.path = args.db
    configure_logging(settings.log_level)

    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())


if __name__ == '__main__':
    main()
