"""
Screens package for gha-tui.
"""

from .main_screen import MainScreen

__all__ = [
    'MainScreen',
]
