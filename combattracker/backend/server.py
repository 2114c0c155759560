"""Run the combat tracker API with uvicorn."""

from __future__ import annotations

import argparse
import logging
from datetime import timedelta

import uvicorn

from combattracker.backend.api import create_app
from combattracker.backend.config import load_settings
from combattracker.backend.logger import setup_logging
from combattracker.backend.store import create_store


logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Combat tracker API server")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--log-level", default=settings.log_level)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    setup_logging(args.log_level.upper())

    store = create_store(settings.database_url)
    app = create_app(
        store=store,
        server_salt=settings.server_salt,
        session_ttl=timedelta(hours=settings.session_ttl_hours),
    )
    backend = "postgres" if settings.database_url else "in-memory"
    logger.info("Starting server on %s:%s with %s store", args.host, args.port, backend)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
