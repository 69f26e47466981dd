"""Command-line interface for the AdoptMe service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

import httpx

from adoptme.config import Settings, load_settings
from adoptme.database import Database

logger = logging.getLogger("adoptme.main")

_DEFAULT_SERVICE_URL = "http://127.0.0.1:8080"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AdoptMe service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve", config=None)

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument("--config", default=None, help="Path to a YAML settings file")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP service (default: 8080)",
    )
    serve_parser.add_argument("--config", default=None, help="Path to a YAML settings file")

    health_parser = subparsers.add_parser("health", help="Check a running service")
    health_parser.add_argument(
        "--url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "health"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(config: str | None) -> Settings:
    return load_settings(Path(config).expanduser() if config else None)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path, store_timeout=settings.store_timeout)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, settings: Settings, host: str, port: int) -> None:
    from adoptme.service import create_app
    import uvicorn

    logger.info("Starting AdoptMe on http://%s:%s", host, port)
    app = create_app(database=database, settings=settings, initialize_database=False)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _check_health(base_url: str) -> int:
    endpoint = base_url.rstrip("/") + "/healthz"
    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact service: {exc}")
        return 1

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1
    print(f"{endpoint} is healthy")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "health":
        return _check_health(args.url)

    settings = _load_settings(args.config)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(database=database, settings=settings, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
