#!/usr/bin/env python3
"""
gha_tui.py - Entry point for gha-tui.

Usage:
    python scripts/gha_tui.py -R owner/repo            # Interactive console
    python scripts/gha_tui.py -R owner/repo --dump     # Print the first runs page to stdout
    python scripts/gha_tui.py --dump --log-cache --json
    python scripts/gha_tui.py -R owner/repo --cleanup --workflow CI --older-than 30d --dry-run
    python scripts/gha_tui.py --help
"""

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from gha_utils import ConfigError, build_settings, parse_duration
from version import __version__

CLEANUP_PER_PAGE = 100


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gha-tui",
        description="gha-tui - Terminal console for GitHub Actions runs, jobs and logs"
    )
    parser.add_argument(
        "-R", "--repo",
        default=None,
        help="Repository in owner/repo format (overrides the config file)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file (default: ~/.config/gha-tui/config.yaml if present)"
    )
    parser.add_argument(
        "--cache-size",
        type=int,
        default=None,
        dest="cache_size_mb",
        help="Log cache size cap in MB (default: 500)"
    )
    parser.add_argument(
        "--cache-ttl",
        default=None,
        help="Log cache time-to-live, e.g. 30m, 24h, 7d (default: 24h)"
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="Log cache directory (default: <tmpdir>/gha-tui/logs)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to gha_tui_debug.log"
    )
    parser.add_argument(
        "--dump",
        action="store_true",
        help="Print the first runs page to stdout and exit (no interactive terminal)"
    )
    parser.add_argument(
        "--log-cache",
        action="store_true",
        help="With --dump, list the local log cache instead of the runs page"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON (used with --dump)"
    )

    cleanup = parser.add_argument_group("cleanup", "Delete runs matching a filter")
    cleanup.add_argument("--cleanup", action="store_true", help="Delete matching runs and exit")
    cleanup.add_argument("--workflow", default="", help="Workflow name (case-insensitive)")
    cleanup.add_argument("--conclusion", default="", help="Run conclusion, e.g. failure, cancelled")
    cleanup.add_argument("--branch", default="", help="Head branch")
    cleanup.add_argument("--actor", default="", help="Login of the triggering user")
    cleanup.add_argument("--older-than", default=None, help="Only runs created before now minus this duration")
    cleanup.add_argument("--dry-run", action="store_true", help="List matching runs without deleting")
    cleanup.add_argument("--max-pages", type=int, default=10, help="Pages of 100 runs to scan (default: 10)")

    parser.add_argument("--version", action="version", version=f"gha-tui {__version__}")
    return parser


def run_cleanup(settings, args) -> int:
    """List, filter and sequentially delete runs. Returns the process exit code."""
    from actions_api import ApiError, RunsFilter, get_client
    from actions_tui.utils.bulk import CleanupFilter, filter_runs, run_sequential
    from actions_tui.utils.formatting import format_age

    cleanup = CleanupFilter(
        workflow_name=args.workflow,
        conclusion=args.conclusion,
        branch=args.branch,
        actor=args.actor,
        older_than=parse_duration(args.older_than) if args.older_than else None,
    )
    if cleanup.is_empty:
        print("Error: --cleanup needs at least one of --workflow, --conclusion, --branch, "
              "--actor or --older-than", file=sys.stderr)
        return 1

    client = get_client(settings)
    runs = []
    try:
        for page in range(1, max(1, args.max_pages) + 1):
            result = client.list_runs(RunsFilter(per_page=CLEANUP_PER_PAGE, page=page))
            runs.extend(result.runs)
            if len(result.runs) < CLEANUP_PER_PAGE:
                break
    except ApiError as e:
        print(f"Error: could not list runs: {e}", file=sys.stderr)
        return 1

    matched = [r for r in filter_runs(runs, cleanup) if r.is_complete]
    print(f"{len(matched)} of {len(runs)} scanned runs match")
    if args.dry_run:
        for run in matched:
            print(f"  #{run.run_number:<6} {run.id:<12} {run.name[:30]:<30} "
                  f"{run.conclusion:<10} {run.head_branch[:20]:<20} {format_age(run.created_at)}")
        return 0
    if not matched:
        return 0

    def on_progress(done: int, total: int) -> None:
        print(f"\rDeleted {done}/{total}", end="", flush=True)

    result = run_sequential([r.id for r in matched], client.delete_run, on_progress=on_progress)
    print()
    print(result.summary("deleted"))
    return 0 if result.ok else 1


def main():
    """Main entry point."""
    # Load .env file from current directory or parents
    load_dotenv()

    args = build_parser().parse_args()

    # Dumping the log cache needs no repository
    if args.dump and args.log_cache:
        from gha_utils import default_cache_dir
        from tui_dump import dump_log_cache
        cache_dir = Path(args.cache_dir).expanduser() if args.cache_dir else None
        if cache_dir is None:
            try:
                cache_dir = build_settings(args.repo, args.config).cache_dir
            except (ConfigError, FileNotFoundError):
                cache_dir = default_cache_dir()
        sys.exit(dump_log_cache(cache_dir, args.json_output))

    overrides = {
        "cache_size_mb": args.cache_size_mb,
        "cache_ttl": args.cache_ttl,
        "cache_dir": args.cache_dir,
    }
    try:
        settings = build_settings(args.repo, args.config, overrides)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError as e:
        print(f"Error: config file not found: {e.filename}", file=sys.stderr)
        sys.exit(1)

    if args.cleanup:
        try:
            sys.exit(run_cleanup(settings, args))
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

    # Handle --dump mode (no interactive terminal)
    if args.dump:
        from tui_dump import dump_runs
        sys.exit(dump_runs(settings, args.json_output))

    # Run the TUI
    from actions_tui.app import run_tui
    run_tui(settings, debug=args.debug)


if __name__ == "__main__":
    main()
