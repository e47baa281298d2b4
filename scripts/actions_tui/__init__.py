"""
gha-tui - terminal console for GitHub Actions.

The Textual app lives in actions_tui.app; the controller and its state,
events and commands are plain Python and import without Textual.
"""
