"""
Headless dump functions for gha-tui.

Used by gha_tui.py --dump to print listing data to stdout without launching
the interactive terminal. Also importable by tests.
"""

import json
import sys
from datetime import timedelta
from pathlib import Path

from actions_api.models import format_timestamp


def dump_runs(settings, as_json: bool, client=None) -> int:
    """Dump the first runs page to stdout."""
    from actions_api import ApiError, RunsFilter, get_client
    from actions_tui.state import RUNS_PER_PAGE
    from actions_tui.utils.formatting import format_age, format_duration
    from version import __version__

    client = client or get_client(settings)
    try:
        page = client.list_runs(RunsFilter(per_page=RUNS_PER_PAGE, page=1))
    except ApiError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if as_json:
        output = []
        for r in page.runs:
            output.append({
                "id": r.id,
                "run_number": r.run_number,
                "workflow": r.name,
                "title": r.display_title,
                "status": r.status,
                "conclusion": r.conclusion,
                "event": r.event,
                "branch": r.head_branch,
                "sha": r.head_sha,
                "actor": r.actor.login,
                "attempt": r.run_attempt,
                "created_at": format_timestamp(r.created_at),
                "duration_seconds": int(r.duration.total_seconds()),
                "url": r.html_url,
            })
        print(json.dumps({"repo": settings.repo_nwo, "total_count": page.total_count, "runs": output}, indent=2))
        return 0

    # Formatted text table
    print(f"gha-tui v{__version__}  {settings.repo_nwo}")
    print()

    if not page.runs:
        print("No runs found.")
        return 0

    fmt = "{:>7s} {:<24s} {:<12s} {:<18s} {:<20s} {:>4s} {:>9s} {:>6s}"
    header = fmt.format("Run", "Workflow", "State", "Event", "Branch", "Att", "Duration", "Age")
    print(header)
    print("-" * len(header))

    for r in page.runs:
        print(fmt.format(
            f"#{r.run_number}", r.name[:24], r.state[:12], r.event[:18], r.head_branch[:20],
            str(r.run_attempt), format_duration(r.duration), format_age(r.created_at),
        ))

    print()
    print(f"{len(page.runs)} of {page.total_count} runs")
    return 0


def dump_log_cache(cache_dir: Path, as_json: bool) -> int:
    """Dump the local log cache entries to stdout."""
    from actions_tui.utils.formatting import format_age, format_bytes
    from actions_tui.utils.logcache import LogCache

    # Listing never evicts, so size and TTL are irrelevant here
    cache = LogCache(cache_dir, max_size=0, ttl=timedelta(0))
    entries = cache.list_entries()

    if as_json:
        output = []
        for e in entries:
            meta = e.meta
            output.append({
                "run_id": e.run_id,
                "attempt": e.attempt,
                "size": e.size,
                "modified": format_timestamp(e.modified),
                "workflow": meta.workflow_name if meta else "",
                "title": meta.display_title if meta else "",
                "branch": meta.branch if meta else "",
            })
        print(json.dumps({"cache_dir": str(cache.root), "entries": output}, indent=2))
        return 0

    print(f"Log cache: {cache.root}")
    print()
    if not entries:
        print("No cached logs.")
        return 0

    fmt = "{:>12s} {:>4s} {:>10s} {:>6s}  {:<24s} {:<30s}"
    header = fmt.format("Run", "Att", "Size", "Age", "Workflow", "Title")
    print(header)
    print("-" * len(header))
    for e in entries:
        meta = e.meta
        print(fmt.format(
            str(e.run_id), str(e.attempt), format_bytes(e.size), format_age(e.modified),
            (meta.workflow_name if meta else "")[:24], (meta.display_title if meta else "")[:30],
        ))

    print()
    print(f"{len(entries)} entries, {format_bytes(sum(e.size for e in entries))} total")
    return 0
