"""
Common helpers for gha-tui screens.
"""

import logging

# Debug logger for screens
_log = logging.getLogger("gha_tui.tui.screens")
