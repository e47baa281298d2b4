"""
Utility modules for gha-tui.

Pure helpers shared by the controller, the command runner and the
headless dump. Nothing here depends on Textual.
"""

from .bulk import (
    BulkResult,
    CleanupFilter,
    filter_runs,
    run_bulk,
    run_sequential,
)

from .formatting import (
    format_age,
    format_bytes,
    format_duration,
    format_percent,
    format_progress_bar,
    truncate_string,
    pad_string,
    BLOCK_FULL,
    BLOCK_EMPTY,
)

from .logcache import (
    CacheEntryInfo,
    CacheError,
    EntryMeta,
    LogCache,
)

from .logs import (
    find_job_log,
    find_failed_step_line,
    first_failed_step_name,
    is_system_stub,
    render_step_progress,
)

from .merge import (
    LogsUnavailableError,
    fetch_attempt_logs,
    fetch_merged_logs,
    merge_attempt_logs,
)

from .metrics import (
    Metrics,
    TimeWindow,
    compute_metrics,
    windows_for_retention,
)

from .search import (
    SearchMatch,
    SearchQuery,
    SearchResults,
    find_line_matches,
    search_logs,
)

from .status import (
    get_status_color,
    get_status_icon,
    get_status_symbol,
    status_legend,
)

__all__ = [
    # Bulk operations
    'BulkResult',
    'CleanupFilter',
    'filter_runs',
    'run_bulk',
    'run_sequential',
    # Formatting
    'format_age',
    'format_bytes',
    'format_duration',
    'format_percent',
    'format_progress_bar',
    'truncate_string',
    'pad_string',
    'BLOCK_FULL',
    'BLOCK_EMPTY',
    # Log cache
    'CacheEntryInfo',
    'CacheError',
    'EntryMeta',
    'LogCache',
    # Logs
    'find_job_log',
    'find_failed_step_line',
    'first_failed_step_name',
    'is_system_stub',
    'render_step_progress',
    # Merge
    'LogsUnavailableError',
    'fetch_attempt_logs',
    'fetch_merged_logs',
    'merge_attempt_logs',
    # Metrics
    'Metrics',
    'TimeWindow',
    'compute_metrics',
    'windows_for_retention',
    # Search
    'SearchMatch',
    'SearchQuery',
    'SearchResults',
    'find_line_matches',
    'search_logs',
    # Status
    'get_status_color',
    'get_status_icon',
    'get_status_symbol',
    'status_legend',
]
