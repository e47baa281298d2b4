"""Single source of truth for the gha-tui version."""

__version__ = "0.4.0"
