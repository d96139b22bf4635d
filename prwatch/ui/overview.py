from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ..layout import TIMESTAMP_WIDTH, layout_overview, overview_widths
from ..models import rollup_key
from ..navigation import Focus
from ..utils.time import compact_relative_time
from ..view import ViewModel
from .style import BORDER, DIM, STATUS_DOT, TEXT, faded, status_color

EMPTY_MESSAGE = "No PRs yet. Press s to set watched repositories."


def render_overview(view: ViewModel, width: int) -> Text:
    """Render the PR list with wrapped titles.

    Row placement comes from `layout_overview`, the same function the mouse
    hit-tester uses.
    """
    focused = view.focus is Focus.OVERVIEW and not view.repo_input_open
    if not view.prs:
        return Text(EMPTY_MESSAGE, style=DIM if focused else BORDER)

    first_width, _ = overview_widths(width)
    out = Text(no_wrap=True, overflow="crop")
    for row, pr in zip(layout_overview(view.prs, width), view.prs, strict=True):
        is_cursor = row.index == view.selected_index
        row_style = (TEXT if is_cursor else DIM) if focused else BORDER
        dot_style = faded(status_color(view.rollups.get(rollup_key(pr))), focused)
        for n, line in enumerate(row.lines):
            if row.index or n:
                out.append("\n")
            if n == 0:
                out.append(f"{'>' if is_cursor else ' '}  ", style=row_style)
                out.append(STATUS_DOT, style=dot_style)
                out.append(" ")
                out.append(line.ljust(first_width), style=row_style)
                stamp = compact_relative_time(pr.updated_at)
                out.append(" " + stamp.rjust(TIMESTAMP_WIDTH - 1), style=DIM if focused else BORDER)
            else:
                out.append("     ")
                out.append(line, style=row_style)
    return out


class OverviewList(Static):
    """Upper pane: one row per open PR authored by the viewer."""

    def __init__(self) -> None:
        super().__init__(id="overview")
        self._view: ViewModel | None = None

    def show(self, view: ViewModel) -> None:
        self._view = view
        self.update(render_overview(view, self.content_size.width or 80))

    def on_resize(self) -> None:
        if self._view is not None:
            self.show(self._view)
