"""Health-check CLI for the NFE.io client.

Runs ``NfeClient.health_check`` against the configured API and prints the
result as JSON on stdout. Configuration comes from ``NFE_*`` environment
variables, optionally loaded from a .env file.

    nfe-health --env-file .env --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from nfe._version import __version__
from nfe.client import NfeClient
from nfe.lib.errors import NfeError
from nfe.lib.logging import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nfe-health",
        description="Check connectivity and credentials against the NFE.io API",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file with NFE_* variables (default: search for .env)",
    )
    parser.add_argument(
        "--base-url",
        help="Override the API base URL (default: NFE_BASE_URL or https://api.nfe.io/v1)",
    )
    parser.add_argument(
        "--info",
        action="store_true",
        help="Include client information (SDK version, runtime, user agent)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG level) logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines on stderr",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"nfe-foundry {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, json_format=args.json_logs)

    try:
        client = NfeClient.from_env(args.env_file, base_url=args.base_url)
    except NfeError as exc:
        logger.error("Invalid configuration: %s", exc)
        print(json.dumps({"status": "error", "details": exc.to_dict()}, default=str))
        return 1

    result = asyncio.run(client.health_check())
    if args.info:
        result["client"] = client.client_info()

    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("status") == "ok" else 1


if __name__ == "__main__":
    sys.exit(main())
