"""
Rendering of SessionState into Rich markup.

Pure functions: every string that originates from the API or from log
content is escaped before it is embedded in markup.
"""

from datetime import datetime, timezone

from rich.markup import escape

from actions_api import RateLimit
from version import __version__

from .state import (
    FORM_FIELDS,
    TAB_LABELS,
    TAB_ORDER,
    Overlay,
    Pane,
    SessionState,
    View,
)
from .utils.formatting import (
    format_age,
    format_bytes,
    format_duration,
    format_percent,
    format_progress_bar,
    pad_string,
    truncate_string,
)
from .utils.status import get_status_icon, status_legend

HELP_LINES = [
    "[bold]Global[/]",
    "  1-5          Switch tab (Runs, Workflows, Metrics, Cache, Runners)",
    "  ?            Toggle this help",
    "  q / ctrl+c   Quit",
    "",
    "[bold]Runs[/]",
    "  j/k          Move cursor",
    "  tab          Switch between runs and jobs",
    "  enter        Select run / open job log",
    "  space        Toggle run selection",
    "  h/l, n/p     Previous / next page",
    "  f            Filter the list by text",
    "  S            Filter runs (workflow, event, status, branch, actor)",
    "  /            Search the loaded logs",
    "  a            Cycle attempts (merged, 1, 2, ...)",
    "  i            Run or job info",
    "  R / F        Re-run all / failed jobs",
    "  C / X        Cancel / force cancel",
    "  d            Delete run (or selected runs)",
    "  r            Refresh",
    "  esc          Back / clear filter",
    "",
    "[bold]Log view[/]",
    "  j/k, pgup/pgdn, g/G   Scroll",
    "  /            Find in log, n/N next/previous match",
    "  esc          Close",
    "",
    "[bold]Workflows[/]",
    "  enter        Show runs of workflow",
    "  e / D        Enable / disable",
    "  d            Delete all runs of workflow",
    "",
    "[bold]Metrics[/]",
    "  [ / ]        Previous / next time window",
    "",
    "[bold]Cache[/]",
    "  space        Toggle selection",
    "  d            Delete cache (or selected caches)",
    "  x            Delete all caches",
    "  s            Cycle sort order",
]


def _window(count: int, cursor: int, height: int) -> range:
    """Indexes of the rows to draw so the cursor stays visible."""
    height = max(1, height)
    if count <= height:
        return range(count)
    start = min(max(0, cursor - height // 2), count - height)
    return range(start, start + height)


def _row(text: str, is_cursor: bool, focused: bool = True) -> str:
    if not is_cursor:
        return text
    return f"[reverse]{text}[/]" if focused else f"[bold]{text}[/]"


# =============================================================================
# Chrome
# =============================================================================

def render_header(state: SessionState, repo: str, rate_limit: RateLimit | None = None) -> str:
    text = f"[bold]gha-tui[/] [dim]v{__version__}[/]  {escape(repo)}"
    if state.live.auto_refresh_run_id:
        text += "  [yellow]\\[LIVE][/]"
    if rate_limit is not None and rate_limit.known:
        color = "red" if rate_limit.remaining < 100 else "dim"
        text += f"  [{color}]API {rate_limit.remaining}/{rate_limit.limit}[/]"
    return text


def render_tabs(state: SessionState) -> str:
    parts = []
    for i, view in enumerate(TAB_ORDER, start=1):
        label = f" {i} {TAB_LABELS[view]} "
        parts.append(f"[reverse bold]{label}[/]" if view == state.view else f"[dim]{label}[/]")
    return " ".join(parts)


def render_status(state: SessionState) -> str:
    if not state.status:
        return ""
    if state.status_error:
        return f"[red]{escape(state.status)}[/]"
    return escape(state.status)


def render_hints(state: SessionState) -> str:
    """Context-sensitive key hints for the footer."""
    overlay = state.overlay
    if overlay == Overlay.CONFIRM:
        hints = "y confirm  n/esc cancel  tab toggle  enter choose"
    elif overlay == Overlay.FILTER_FORM:
        hints = "tab/↑↓ field  ←→ change  type to edit  c clear  enter apply  esc cancel"
    elif overlay == Overlay.SEARCH:
        if state.search.input_mode:
            hints = "type query (/regex)  enter search  esc close"
        else:
            hints = "j/k move  enter open  / new search  S filter  esc close"
    elif overlay == Overlay.LOG:
        if state.log_view.searching:
            hints = "type to find  enter search  esc cancel"
        else:
            hints = "j/k scroll  pgup/pgdn page  g/G top/bottom  / find  n/N next/prev  a attempt  esc close"
    elif overlay == Overlay.INFO:
        hints = "j/k scroll  esc close"
    elif overlay == Overlay.HELP:
        hints = "j/k scroll  esc close"
    else:
        active = state.active_list()
        if active is not None and active.filtering:
            hints = "type to filter  enter keep  esc clear"
        elif state.view == View.RUNS:
            if state.focused_pane == Pane.LEFT:
                hints = "enter select  space mark  h/l page  f filter  S filters  / search  R/F rerun  C cancel  d delete  ? help"
            else:
                hints = "enter log  a attempt  i info  esc back  R/F rerun  C/X cancel  ? help"
        elif state.view == View.WORKFLOWS:
            hints = "enter runs  e enable  D disable  d delete runs  f filter  r refresh  ? help"
        elif state.view == View.METRICS:
            hints = "[/] window  r refresh  ? help"
        elif state.view == View.CACHE:
            hints = "space mark  d delete  x delete all  s sort  f filter  r refresh  ? help"
        else:
            hints = "f filter  r refresh  ? help"
    return f"[dim]{escape(hints)}[/]"


# =============================================================================
# Runs tab
# =============================================================================

def render_runs_pane(state: SessionState, height: int, width: int = 50) -> str:
    p = state.pagination
    focused = state.focused_pane == Pane.LEFT and state.overlay == Overlay.NONE
    title = f"[bold]Runs[/] [dim]page {p.page}/{p.total_pages} ({p.total_count} total)[/]"
    if p.loading:
        title += " [yellow]loading...[/]"
    lines = [title]
    if not state.runs_filter.is_empty:
        lines.append(f"[cyan]filter: {escape(state.runs_filter.summary())}[/]")
    lst = state.runs_list
    if lst.filtering or lst.filter_text:
        cursor = "_" if lst.filtering else ""
        lines.append(f"[cyan]find: {escape(lst.filter_text)}{cursor}[/]")
    if state.selected_run_ids:
        lines.append(f"[magenta]{len(state.selected_run_ids)} selected[/]")

    runs = state.visible_runs()
    if not runs:
        lines.append("[dim]No runs[/]" if not p.loading else "")
        return "\n".join(lines)

    now = datetime.now(timezone.utc)
    text_width = max(10, width - 22)
    for i in _window(len(runs), lst.cursor, height - len(lines)):
        run = runs[i]
        mark = "*" if run.id in state.selected_run_ids else " "
        title_text = pad_string(truncate_string(run.display_title or run.name, text_width), text_width)
        row = (
            f"{mark}{get_status_icon(run.state)} #{run.run_number:<5} {escape(title_text)} "
            f"[dim]{format_age(run.created_at, now)}[/]"
        )
        selected = state.details.run is not None and state.details.run.id == run.id
        if selected and i != lst.cursor:
            row = f"[bold]{row}[/]"
        lines.append(_row(row, i == lst.cursor, focused))
    return "\n".join(lines)


def render_details_pane(state: SessionState, height: int) -> str:
    details = state.details
    run = details.run
    if run is None:
        return "[dim]Select a run with enter to see its jobs.[/]"
    focused = state.focused_pane == Pane.MIDDLE and state.overlay == Overlay.NONE
    attempt = state.live.viewing_attempt
    if run.run_attempt > 1:
        scope = "all attempts (merged)" if attempt == 0 else f"attempt {attempt}"
        attempt_text = f"{scope} of {run.run_attempt}"
    else:
        attempt_text = "attempt 1"
    lines = [
        f"{get_status_icon(run.state)} [bold]{escape(run.display_title or run.name)}[/] [dim]#{run.run_number}[/]",
        f"[dim]{escape(run.name)} · {escape(run.head_branch)} · {run.short_sha} · "
        f"{escape(run.event)} · {escape(run.actor.login)} · {attempt_text}[/]",
        f"[dim]duration {format_duration(run.duration)}"
        + (" · logs loading" if state.logs_loading else f" · {len(state.log_map)} logs")
        + "[/]",
        "",
    ]
    if details.loading and not details.jobs:
        lines.append("[yellow]Loading jobs...[/]")
        return "\n".join(lines)
    if details.error and not details.jobs:
        lines.append(f"[red]{escape(details.error)}[/]")
        return "\n".join(lines)
    if not details.jobs:
        lines.append("[dim]No jobs[/]")
        return "\n".join(lines)

    for i in _window(len(details.jobs), details.cursor, height - len(lines)):
        job = details.jobs[i]
        row = f"{get_status_icon(job.state)} {escape(job.name)} [dim]{format_duration(job.duration)}[/]"
        lines.append(_row(row, i == details.cursor, focused))
    return "\n".join(lines)


# =============================================================================
# Overlays
# =============================================================================

def render_log_view(state: SessionState, height: int) -> str:
    lv = state.log_view
    title = f"[bold]{escape(lv.job_name or 'Log')}[/]"
    attempt = state.live.viewing_attempt
    if attempt:
        title += f" [dim]attempt {attempt}[/]"
    if state.live.is_tailing(lv.job_id):
        title += " [yellow]\\[LIVE][/]"
    lines_all = lv.lines
    title += f" [dim]line {min(lv.offset + 1, len(lines_all))}/{len(lines_all)}[/]"
    lines = [title]
    if lv.notice:
        lines.append(f"[red]{escape(lv.notice)}[/]")
    if lv.loading and not lv.content:
        lines.append("[yellow]Loading...[/]")

    body_height = max(1, height - len(lines) - (1 if lv.searching else 0))
    matches = set(lv.matches)
    current = lv.matches[lv.match_index] if lv.matches else -1
    for index in range(lv.offset, min(len(lines_all), lv.offset + body_height)):
        text = escape(lines_all[index])
        if index == current:
            text = f"[reverse]{text}[/]"
        elif index in matches:
            text = f"[yellow]{text}[/]"
        lines.append(text)
    if lv.searching:
        lines.append(f"[cyan]/{escape(lv.search_text)}_[/]")
    return "\n".join(lines)


def render_info_view(state: SessionState, height: int) -> str:
    info = state.info
    lines: list[str] = []
    if info.kind == "job" and info.job is not None:
        job = info.job
        lines += [
            f"{get_status_icon(job.state)} [bold]Job {escape(job.name)}[/]",
            "",
            f"  ID:          {job.id}",
            f"  Status:      {escape(job.status)}",
            f"  Conclusion:  {escape(job.conclusion or '-')}",
            f"  Attempt:     {job.run_attempt}",
            f"  Runner:      {escape(job.runner_name or '-')}",
            f"  Started:     {job.started_at.isoformat() if job.started_at else '-'}",
            f"  Completed:   {job.completed_at.isoformat() if job.completed_at else '-'}",
            f"  Duration:    {format_duration(job.duration)}",
            f"  URL:         {escape(job.html_url)}",
            "",
            "[bold]Steps[/]",
        ]
        for step in job.steps:
            lines.append(f"  {get_status_icon(step.state)} {step.number:>2}. {escape(step.name)}")
    elif info.run is not None:
        run = info.run
        lines += [
            f"{get_status_icon(run.state)} [bold]{escape(run.display_title or run.name)}[/]",
            "",
            f"  Workflow:    {escape(run.name)}",
            f"  Run:         #{run.run_number} (id {run.id})",
            f"  Status:      {escape(run.status)}",
            f"  Conclusion:  {escape(run.conclusion or '-')}",
            f"  Attempts:    {run.run_attempt}",
            f"  Event:       {escape(run.event)}",
            f"  Branch:      {escape(run.head_branch)}",
            f"  Commit:      {escape(run.head_sha)}",
            f"  Actor:       {escape(run.actor.login)}",
            f"  Created:     {run.created_at.isoformat() if run.created_at else '-'}",
            f"  Duration:    {format_duration(run.duration)}",
            f"  URL:         {escape(run.html_url)}",
            "",
            f"[bold]Jobs[/] [dim]({len(info.jobs)})[/]",
        ]
        if state.live.is_auto_refresh(run.id):
            lines[0] += " [yellow]\\[LIVE][/]"
        for job in info.jobs:
            lines.append(f"  {get_status_icon(job.state)} {escape(job.name)} [dim]{format_duration(job.duration)}[/]")
    offset = min(info.offset, max(0, len(lines) - 1))
    return "\n".join(lines[offset:offset + max(1, height)])


def render_search_view(state: SessionState, height: int) -> str:
    sv = state.search
    if sv.input_mode:
        lines = [
            "[bold]Search logs[/]",
            "",
            f"  Query: [cyan]{escape(sv.query_text)}_[/]",
            "",
            "[dim]  Plain text matches case-insensitively; start with / for a regular expression.[/]",
            f"[dim]  {len(state.log_map)} job logs loaded.[/]",
        ]
        if sv.running:
            lines.append("[yellow]  Searching...[/]")
        return "\n".join(lines)

    results = sv.results
    if results is None:
        return "[dim]No results[/]"
    lines = [
        f"[bold]{results.total_count} matches[/] for [cyan]{escape(sv.query_text)}[/] "
        f"[dim]in {len(results.job_counts)} jobs[/]",
    ]
    if not results.matches:
        lines.append("[dim]No matches[/]")
        return "\n".join(lines)
    for i in _window(len(results.matches), sv.cursor, height - 1):
        match = results.matches[i]
        row = (
            f"[dim]{escape(truncate_string(match.job_name, 30))}:{match.line}[/] "
            f"{escape(match.content.strip())}"
        )
        lines.append(_row(row, i == sv.cursor))
    return "\n".join(lines)


def render_filter_form(state: SessionState) -> str:
    form = state.filter_form
    if form is None:
        return ""
    lines = ["[bold]Filter runs[/]", ""]
    for index, label in enumerate(FORM_FIELDS):
        value = form.value_label(index)
        focused = index == form.focused
        if form.choice_count(index):
            shown = f"◀ {escape(value)} ▶" if focused else escape(value)
        elif focused:
            shown = f"{escape(value)}_"
        else:
            shown = escape(value or "-")
        marker = "[cyan]>[/]" if focused else " "
        line = f" {marker} {label:<10} {shown}"
        lines.append(f"[bold]{line}[/]" if focused else line)
    lines += ["", f"[dim]  Current: {escape(state.runs_filter.summary() or 'none')}[/]"]
    return "\n".join(lines)


def render_confirm(state: SessionState) -> str:
    confirm = state.confirm
    if confirm is None:
        return ""
    yes = "[reverse bold] Yes [/]" if confirm.confirm_selected else " Yes "
    no = "[reverse bold] No [/]" if not confirm.confirm_selected else " No "
    return "\n".join([
        f"[bold]{escape(confirm.title)}[/]",
        "",
        escape(confirm.message),
        "",
        f"    {yes}    {no}",
    ])


def render_help(state: SessionState, height: int) -> str:
    lines = ["[bold]Keys[/]", ""] + HELP_LINES + ["", status_legend()]
    offset = min(state.help_offset, max(0, len(lines) - 1))
    return "\n".join(escape_help(line) for line in lines[offset:offset + max(1, height)])


def escape_help(line: str) -> str:
    """Help text keeps its bold headings but shows literal brackets in key names."""
    if line.startswith("[bold]") or "=" in line:
        return line
    return escape(line)


# =============================================================================
# Other tabs
# =============================================================================

def render_workflows_view(state: SessionState, height: int) -> str:
    wf_state = state.workflows
    lines = [f"[bold]Workflows[/] [dim]({len(wf_state.workflows)})[/]"]
    if wf_state.loading:
        lines[0] += " [yellow]loading...[/]"
    lst = wf_state.list
    if lst.filtering or lst.filter_text:
        lines.append(f"[cyan]find: {escape(lst.filter_text)}{'_' if lst.filtering else ''}[/]")
    workflows = state.visible_workflows()
    if not workflows:
        lines.append("[dim]No workflows[/]")
        return "\n".join(lines)
    for i in _window(len(workflows), lst.cursor, height - len(lines)):
        wf = workflows[i]
        icon = "[green]●[/]" if wf.enabled else "[dim]○[/]"
        stats = wf_state.stats.get(wf.id)
        stats_text = ""
        if stats is not None and stats.total_runs:
            rate = stats.success_count / stats.total_runs * 100
            stats_text = (
                f"[dim]{stats.total_runs} recent runs[/] "
                f"[green]{format_percent(rate)}[/] {format_progress_bar(rate, 10)}"
            )
        name = escape(pad_string(truncate_string(wf.name, 30), 30))
        path = escape(pad_string(truncate_string(wf.path, 40), 40))
        row = f"{icon} {name} [dim]{path}[/] {stats_text}"
        lines.append(_row(row, i == lst.cursor))
    return "\n".join(lines)


def render_metrics_view(state: SessionState, height: int) -> str:
    ms = state.metrics
    window_tabs = " ".join(
        f"[reverse]{w.label}[/]" if i == ms.window_index else f"[dim]{w.label}[/]"
        for i, w in enumerate(ms.windows)
    )
    lines = [f"[bold]Metrics[/]  {window_tabs}"]
    if ms.loading:
        lines.append("[yellow]Loading...[/]")
    m = ms.metrics
    if m is None:
        if not ms.loading:
            lines.append("[dim]No data[/]")
        return "\n".join(lines)

    lines += [
        "",
        f"  Runs:          {m.total_runs} [dim](sampled {m.sampled_runs})[/]",
        f"  Success rate:  [green]{format_percent(m.success_rate)}[/] {format_progress_bar(m.success_rate, 20)}",
        f"  Failure rate:  [red]{format_percent(m.failure_rate)}[/] {format_progress_bar(m.failure_rate, 20)}",
        f"  Cancelled:     {m.cancel_count}",
        f"  Retry rate:    {format_percent(m.retry_rate)}",
        "",
        f"  Duration:      mean {format_duration(m.mean_duration)}  median {format_duration(m.median_duration)}"
        f"  p95 {format_duration(m.p95_duration)}",
        f"  Queue time:    median {format_duration(m.median_queue_time)}  p95 {format_duration(m.p95_queue_time)}",
        f"  Jobs sampled:  {m.total_jobs} [dim]({m.job_failure_count} failed)[/]",
    ]

    def ranked(title: str, rows: list[str]) -> None:
        lines.append("")
        lines.append(f"[bold]{title}[/]")
        lines.extend(rows or ["  [dim]none[/]"])

    ranked("Top failing workflows", [
        f"  {escape(name)} [red]{failed}[/]/{total}" for name, failed, total in m.top_failing_workflows
    ])
    ranked("Top failing jobs", [f"  {escape(name)} [red]{count}[/]" for name, count in m.top_failing_jobs])
    ranked("By event", [f"  {escape(name)} {count}" for name, count in m.runs_by_event])
    ranked("By actor", [f"  {escape(name)} {count}" for name, count in m.runs_by_actor])
    ranked("By branch", [f"  {escape(name)} {count}" for name, count in m.runs_by_branch])

    offset = min(ms.offset, max(0, len(lines) - 1))
    return "\n".join(lines[:1] + lines[1 + offset:][:max(1, height - 1)])


def render_cache_view(state: SessionState, height: int) -> str:
    cs = state.caches
    total_size = sum(c.size_in_bytes for c in cs.caches)
    lines = [
        f"[bold]Caches[/] [dim]{cs.total_count or len(cs.caches)} entries, "
        f"{format_bytes(total_size)}, sorted by {cs.sort.value}[/]"
    ]
    if cs.loading:
        lines[0] += " [yellow]loading...[/]"
    lst = cs.list
    if lst.filtering or lst.filter_text:
        lines.append(f"[cyan]find: {escape(lst.filter_text)}{'_' if lst.filtering else ''}[/]")
    if cs.selected_ids:
        lines.append(f"[magenta]{len(cs.selected_ids)} selected[/]")
    caches = state.visible_caches()
    if not caches:
        lines.append("[dim]No caches[/]")
        return "\n".join(lines)
    now = datetime.now(timezone.utc)
    for i in _window(len(caches), lst.cursor, height - len(lines)):
        cache = caches[i]
        mark = "*" if cache.id in cs.selected_ids else " "
        key = escape(pad_string(truncate_string(cache.key, 50), 50))
        ref = escape(pad_string(truncate_string(cache.ref, 25), 25))
        row = (
            f"{mark} {key} [dim]{ref}[/] {format_bytes(cache.size_in_bytes):>10} "
            f"[dim]{format_age(cache.last_accessed_at, now)}[/]"
        )
        lines.append(_row(row, i == lst.cursor))
    return "\n".join(lines)


def render_runners_view(state: SessionState, height: int) -> str:
    rs = state.runners
    lines = [f"[bold]Self-hosted runners[/] [dim]({len(rs.runners)})[/]"]
    if rs.loading:
        lines[0] += " [yellow]loading...[/]"
    if rs.org_failed:
        lines.append("[dim]Organization runners unavailable; showing repository runners only.[/]")
    lst = rs.list
    if lst.filtering or lst.filter_text:
        lines.append(f"[cyan]find: {escape(lst.filter_text)}{'_' if lst.filtering else ''}[/]")
    runners = state.visible_runners()
    if not runners:
        lines.append("[dim]No self-hosted runners[/]")
        return "\n".join(lines)
    for i in _window(len(runners), lst.cursor, height - len(lines)):
        runner = runners[i]
        if runner.status != "online":
            status = "[dim]○ offline[/]"
        elif runner.busy:
            status = "[yellow]● busy   [/]"
        else:
            status = "[green]● idle   [/]"
        name = escape(pad_string(truncate_string(runner.name, 30), 30))
        labels = escape(", ".join(runner.label_names))
        row = f"{status} {name} [dim]{escape(runner.os):<8}[/] {labels}"
        lines.append(_row(row, i == lst.cursor))
    return "\n".join(lines)


def render_body(state: SessionState, height: int) -> str:
    """Full-width body for overlays and every tab except the split Runs view."""
    overlay = state.overlay
    if overlay == Overlay.CONFIRM:
        return render_confirm(state)
    if overlay == Overlay.FILTER_FORM:
        return render_filter_form(state)
    if overlay == Overlay.SEARCH:
        return render_search_view(state, height)
    if overlay == Overlay.LOG:
        return render_log_view(state, height)
    if overlay == Overlay.INFO:
        return render_info_view(state, height)
    if overlay == Overlay.HELP:
        return render_help(state, height)
    if state.view == View.WORKFLOWS:
        return render_workflows_view(state, height)
    if state.view == View.METRICS:
        return render_metrics_view(state, height)
    if state.view == View.CACHE:
        return render_cache_view(state, height)
    if state.view == View.RUNNERS:
        return render_runners_view(state, height)
    return ""


def uses_split_panes(state: SessionState) -> bool:
    return state.overlay == Overlay.NONE and state.view == View.RUNS
