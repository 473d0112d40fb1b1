# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Command-line entry point: index the upstream repository, search it, or serve the admin API."""

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import load_config
from .errors import ScriptIndexError
from .logging_setup import setup_logging
from .services import build_services

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scriptindex", description=__doc__)
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    index_cmd = sub.add_parser("index", help="Sync the upstream repository and index its functions")
    index_cmd.add_argument("--clone-path", default=None, help="Absolute path of the working copy")
    index_cmd.add_argument(
        "--full-rescan", action="store_true", help="Re-index every eligible file"
    )

    search_cmd = sub.add_parser("search", help="Find functions similar to a text query")
    search_cmd.add_argument("text", help="Natural-language query")
    search_cmd.add_argument("--top-k", type=int, default=None)

    sub.add_parser("serve", help="Run the admin HTTP API")
    return parser


def _run_index(args: argparse.Namespace, config) -> int:
    services = build_services(config)
    try:
        summary = services.run_index(clone_path=args.clone_path, full_rescan=args.full_rescan)
    finally:
        services.close()

    print("=" * 80)
    print("INDEX COMPLETE")
    print("=" * 80)
    print(f"  Commit:          {summary.head_commit}")
    print(f"  Full scan:       {summary.full_scan}")
    print(f"  Files processed: {len(summary.processed_files)}")
    print(f"  Files failed:    {len(summary.failed_files)}")
    print(f"  Functions saved: {summary.saved_functions}")
    for path in summary.failed_files:
        print(f"    failed: {path}")
    return 0 if not summary.failed_files else 2


def _run_search(args: argparse.Namespace, config) -> int:
    services = build_services(config)
    try:
        matches = services.retriever.search(args.text, args.top_k)
    finally:
        services.close()

    print(f"Found {len(matches)} matches:")
    for rank, match in enumerate(matches, start=1):
        print()
        print(f"[{rank}] {match.name}  ({match.file_path}, distance={match.distance:.4f})")
        print("-" * 80)
        print(match.code)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(config)

    try:
        if args.command == "index":
            return _run_index(args, config)
        if args.command == "search":
            return _run_search(args, config)
        if args.command == "serve":
            from .admin_api_main import main as serve_main

            serve_main()
            return 0
    except ScriptIndexError as exc:
        logger.error("%s", exc.message)
        return 1
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
