"""
Status utilities for gha-tui.

Pure functions for mapping run/job/step statuses and conclusions to
symbols and colors. These functions don't depend on Textual or any UI framework.
"""

# Status symbols (Unicode characters)
CHECK = "\u2713"  # ✓
CROSS = "\u2717"  # ✗
CIRCLE_FILLED = "\u25cf"  # ●
CIRCLE_EMPTY = "\u25cb"  # ○
CIRCLE_SLASH = "\u2298"  # ⊘
SKIP = "\u2212"  # −
HOURGLASS = "\u29d6"  # ⧖

_SYMBOLS = {
    "success": CHECK,
    "failure": CROSS,
    "timed_out": CROSS,
    "startup_failure": CROSS,
    "cancelled": CIRCLE_SLASH,
    "skipped": SKIP,
    "neutral": SKIP,
    "in_progress": CIRCLE_FILLED,
    "queued": HOURGLASS,
    "waiting": HOURGLASS,
    "requested": HOURGLASS,
    "pending": HOURGLASS,
}

_COLORS = {
    "success": "green",
    "failure": "red",
    "timed_out": "red",
    "startup_failure": "red",
    "cancelled": "dim",
    "skipped": "dim",
    "neutral": "dim",
    "in_progress": "yellow",
    "queued": "cyan",
    "waiting": "cyan",
    "requested": "cyan",
    "pending": "cyan",
}


def get_status_symbol(state: str) -> str:
    """
    Get the symbol for a status or conclusion string.

    Args:
        state: e.g. "success", "failure", "in_progress", "queued"

    Returns:
        Unicode symbol, ○ for unknown values
    """
    return _SYMBOLS.get((state or "").lower(), CIRCLE_EMPTY)


def get_status_color(state: str) -> str:
    """Get the color name for a status or conclusion string."""
    return _COLORS.get((state or "").lower(), "dim")


def get_status_icon(state: str) -> str:
    """Symbol wrapped in Rich markup with its color."""
    return f"[{get_status_color(state)}]{get_status_symbol(state)}[/]"


def status_legend() -> str:
    return "  ".join(
        f"{get_status_icon(s)}={label}"
        for s, label in (
            ("success", "pass"),
            ("failure", "fail"),
            ("cancelled", "cancel"),
            ("in_progress", "run"),
            ("queued", "queue"),
            ("skipped", "skip"),
        )
    )
