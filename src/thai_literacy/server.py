#!/usr/bin/env python3
"""
Thai Literacy - API launcher
Optionally rewrites legacy asset paths, then serves the FastAPI backend.
"""

import argparse
import logging

import uvicorn


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Thai literacy API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    parser.add_argument(
        "--migrate",
        action="store_true",
        help="Rewrite legacy asset paths in stored content before serving",
    )
    return parser.parse_args(argv)


def run_migration():
    from thai_literacy.core.services.content_migration_service import (
        get_content_migration_service,
    )

    report = get_content_migration_service().run()
    print(f"Asset path migration updated {report.total} rows.")


def main(argv=None):
    args = parse_args(argv)
    if args.migrate:
        run_migration()

    logging.basicConfig(level=logging.INFO)
    print(f"Starting server on http://{args.host}:{args.port}")
    uvicorn.run(
        "thai_literacy.api.main:app",
        host=args.host,
        port=args.port,
        log_level="info",
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
