from __future__ import annotations

import time

from rich.text import Text
from textual.widgets import Static

from ..utils.time import format_last_refresh
from ..view import ViewModel
from .style import DIM, RED


def status_line(view: ViewModel, now: float | None = None) -> str:
    """Return `repos  |  last refresh: ...  |  syncing|idle`."""
    repos = ", ".join(view.repos) if view.repos else "—"
    state = "syncing" if view.loading_overview or view.loading_detail else "idle"
    return f"{repos}  |  last refresh: {format_last_refresh(view.last_refresh, now)}  |  {state}"


class StatusBar(Static):
    """Top line with the watched repos and sync state, plus the message line."""

    def __init__(self) -> None:
        super().__init__(id="status")

    def show(self, view: ViewModel) -> None:
        text = Text(status_line(view, time.time()), style=DIM)
        if view.error_text:
            text.append(f"\n{view.error_text}", style=RED)
        elif view.info_text:
            text.append(f"\n{view.info_text}", style=DIM)
        self.update(text)
