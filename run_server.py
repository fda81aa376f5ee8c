#!/usr/bin/env python3
"""
CLI entry point for the Meural Manager web server.

Usage:
    python run_server.py
    python run_server.py --port 8080 -v
    python run_server.py --log-file server.log
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from db.database import dispose_engine, init_db
from web.app import create_app

load_dotenv()

DEFAULT_PORT = 3333


def setup_logging(verbose: bool = False, log_file: str | None = None) -> None:
    """Configure logging for the server."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers
    )


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Serve the Meural Manager dashboard and JSON API.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to listen on (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", DEFAULT_PORT)),
        help=f"Port to listen on (default: PORT env var or {DEFAULT_PORT})"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file"
    )
    args = parser.parse_args()

    setup_logging(args.verbose, args.log_file)

    if not init_db():
        print("ERROR: Could not initialize the metadata database.")
        return 1

    app = create_app()
    print(f"Meural Manager running at http://{args.host}:{args.port}")

    try:
        app.run(host=args.host, port=args.port, threaded=True)
    except KeyboardInterrupt:
        print("\nServer stopped.")
    finally:
        dispose_engine()

    return 0


if __name__ == "__main__":
    sys.exit(main())
