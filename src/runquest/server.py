"""RunQuest API server - main entry point."""

import argparse
import logging
import os
import sys

import uvicorn

from .app import create_app
from .config import load_config
from .errors import ConfigurationError

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the RunQuest API server."""
    parser = argparse.ArgumentParser(description="RunQuest API server")
    parser.add_argument(
        "--host",
        type=str,
        default=os.getenv("RUNQUEST_HOST", "127.0.0.1"),
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "3001")),
        help="Port to listen on (default: 3001)",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ConfigurationError as exc:
        print(f"RunQuest cannot start: {exc}", file=sys.stderr)
        print("Get your credentials from https://www.strava.com/settings/api", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.runquest_log_level)
    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, log_level=config.runquest_log_level.lower())


if __name__ == "__main__":
    main()
