"""
Formatting utilities for gha-tui.

Provides pure functions for formatting durations, ages, sizes, and other values.
These functions don't depend on Textual or any UI framework.
"""

from datetime import datetime, timedelta, timezone

# Block characters for progress bars
BLOCK_FULL = "\u2588"  # █
BLOCK_EMPTY = "\u2591"  # ░


def format_duration(value: timedelta | float) -> str:
    """
    Format a duration as a compact human-readable string.

    Args:
        value: timedelta or seconds

    Returns:
        String like "1h02m", "4m13s", "9s"; "--" for zero or negative values
    """
    seconds = value.total_seconds() if isinstance(value, timedelta) else float(value)
    if seconds <= 0:
        return "--"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h{minutes:02d}m"
    if minutes > 0:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def format_age(when: datetime | None, now: datetime | None = None) -> str:
    """
    Format a timestamp relative to now.

    Returns:
        String like "just now", "5m ago", "3h ago", "2d ago"; "--" when unknown
    """
    if when is None:
        return "--"
    now = now or datetime.now(timezone.utc)
    seconds = int((now - when).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def format_bytes(size: int) -> str:
    """Format a byte count as e.g. '512 B', '3.4 MB'."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def format_progress_bar(percent: float, width: int = 10) -> str:
    """
    Create a text-based progress bar using block characters.

    Args:
        percent: Progress percentage (0-100)
        width: Width of the progress bar in characters

    Returns:
        String like "█████░░░░░" representing progress
    """
    percent = max(0.0, min(100.0, percent))
    filled = int(percent / 100.0 * width)
    return BLOCK_FULL * filled + BLOCK_EMPTY * (width - filled)


def truncate_string(s: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        s: String to truncate
        max_length: Maximum length (including suffix)
        suffix: Suffix to add when truncating (default "...")

    Returns:
        Truncated string with suffix if needed
    """
    if len(s) <= max_length:
        return s
    if max_length <= len(suffix):
        return suffix[:max_length]
    return s[:max_length - len(suffix)] + suffix


def pad_string(s: str, width: int, align: str = "left") -> str:
    """
    Pad (or cut) a string to exactly width characters.

    Args:
        s: String to pad
        width: Target width
        align: "left" or "right"
    """
    if len(s) >= width:
        return s[:width]
    if align == "right":
        return s.rjust(width)
    return s.ljust(width)
