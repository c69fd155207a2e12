"""
Command-line interface for the offersign server.

Settings come from the environment (see ``ServerConfig.from_env``); flags
given on the command line take precedence.
"""

import argparse
import sys
from dataclasses import replace
from typing import Optional

from .. import __version__
from ..exceptions import OfferSignError
from .config import ServerConfig


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment configuration with the explicitly passed flags applied."""
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.record_store is not None:
        overrides["record_store"] = args.record_store
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.debug:
        overrides["debug"] = True
    if args.api_keys:
        overrides["api_keys"] = {key.strip() for key in args.api_keys.split(",") if key.strip()}

    return replace(ServerConfig.from_env(), **overrides)


def main(argv: Optional[list] = None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="offersign-server",
        description="offersign server - view and sign customer offers",
    )

    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind to (default: $OFFERSIGN_HOST or 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: $OFFERSIGN_PORT or 8000)",
    )
    parser.add_argument(
        "--record-store",
        default=None,
        choices=["airtable", "memory"],
        help="Where offers live (default: $OFFERSIGN_RECORD_STORE or airtable; memory serves demo offers)",
    )
    parser.add_argument(
        "--api-keys",
        default=None,
        help="Comma-separated list of accepted API keys (default: $OFFERSIGN_API_KEYS, else no auth)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: $OFFERSIGN_LOG_LEVEL or info)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    from .app import OfferSignServer

    try:
        config = build_config(args)
        server = OfferSignServer(config=config)
    except (OfferSignError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"""
offersign server v{__version__}
  Host: {config.host}
  Port: {config.port}
  Record store: {config.record_store}

API documentation: http://{config.host}:{config.port}/docs

Press Ctrl+C to stop the server.
""")

    try:
        server.run()
    except KeyboardInterrupt:
        print("\nServer stopped.")
        sys.exit(0)


if __name__ == "__main__":
    main()
