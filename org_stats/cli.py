#!/usr/bin/env python3
"""
Command-line interface for org-stats.
"""

import argparse
import logging
import sys
from typing import Optional

from .app import run_snapshot
from .config import load_configuration
from .db_factory import get_database_manager
from .errors import OrgStatsError
from .scoring import Scorer, update_scores


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="org-stats",
        description="GitHub organization statistics snapshots"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Snapshot command
    subparsers.add_parser("snapshot", help="Take a snapshot of the configured organizations")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the JSON API server")
    server_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)"
    )

    # Rescore command
    rescore_parser = subparsers.add_parser("rescore", help="Recompute the scores of the latest projects")
    rescore_parser.add_argument(
        "--organizations",
        help="Comma separated organizations (default: ORGANIZATION_LIST)"
    )
    rescore_parser.add_argument(
        "--formula",
        help="Scoring project formula (default: SCORING_PROJECT)"
    )

    return parser


def rescore(organizations: Optional[str], formula: Optional[str]) -> int:
    config = load_configuration()
    scorer = Scorer(formula or config.scoring_project)
    with get_database_manager(config) as db_manager:
        db_manager.setup_database()
        messages = update_scores(db_manager, organizations or config.organization_list, scorer)
    for message in messages:
        print(message)
    return 0 if messages and messages[0].endswith("updated") else 1


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    if args.command == "snapshot":
        success, message = run_snapshot()
        print(message)
        return 0 if success else 1
    elif args.command == "server":
        from .server import run_server
        try:
            run_server(port=args.port)
            return 0
        except KeyboardInterrupt:
            print("\nServer stopped by user")
            return 0
        except Exception as e:
            print(f"Server error: {e}", file=sys.stderr)
            return 1
    elif args.command == "rescore":
        try:
            return rescore(args.organizations, args.formula)
        except OrgStatsError as e:
            print(f"Rescore failed: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
