from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.widgets import Input, Label

if TYPE_CHECKING:  # For type checking only, not used at runtime
    from ..tui import PRWatchApp

REPO_PROMPT_ID = "repo_prompt"
REPO_INPUT_ID = "repo_input"


class PromptManager:
    """Mounts and removes the watched-repositories editor."""

    def __init__(self, app: PRWatchApp) -> None:
        """Initialize with reference to the main app."""
        self.app = app

    def open_repo_prompt(self, value: str) -> None:
        """Show the editor pre-filled with the current repos.

        Args:
            value: Comma separated `owner/repo` list to start from.
        """
        self.close_repo_prompt()
        field = Input(value=value, placeholder="org/repo", id=REPO_INPUT_ID)
        container = Vertical(Label("Enter repo to watch"), field, id=REPO_PROMPT_ID)
        self.app.mount(container)
        field.focus()

    def close_repo_prompt(self) -> None:
        with contextlib.suppress(NoMatches):
            self.app.query_one(f"#{REPO_PROMPT_ID}").remove()
