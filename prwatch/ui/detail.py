from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ..layout import MAX_VISIBLE_DETAIL_ROWS, detail_window
from ..models import CheckCategory
from ..navigation import Focus
from ..status import summarize
from ..view import ViewModel
from .style import BORDER, DIM, GREEN, RED, STATUS_DOT, TEXT, YELLOW, faded, review_color, review_label, status_color

# Title, blank, progress bar, blank.
DETAIL_LIST_OFFSET = 4
BAR_BLOCK = "▌"
OPEN_HINT = "[o] Open PR"


def bar_segments(view: ViewModel, focused: bool) -> list[tuple[int, str]]:
    """Progress bar segments over checks and runs together."""
    counts = summarize([*view.detail_checks, *view.detail_runs])
    in_progress = counts[CheckCategory.RUNNING] + counts[CheckCategory.QUEUED] + counts[CheckCategory.PENDING]
    return [
        (in_progress, faded(YELLOW, focused)),
        (counts[CheckCategory.FAILED], faded(RED, focused)),
        (counts[CheckCategory.PASSED], faded(GREEN, focused)),
        (counts[CheckCategory.SKIPPED] + counts[CheckCategory.CANCELLED], faded(BORDER, focused)),
    ]


def render_progress_bar(segments: list[tuple[int, str]], width: int) -> Text:
    """Contiguous half-block bar; every non-empty segment gets at least one block."""
    total = sum(value for value, _ in segments)
    out = Text()
    if total == 0 or width <= 0:
        return out
    blocks = [[max(1, round(value / total * width)), style] for value, style in segments if value > 0]
    # The last segment absorbs rounding so the bar fills the width exactly.
    blocks[-1][0] += width - sum(count for count, _ in blocks)
    for count, style in blocks:
        out.append(BAR_BLOCK * max(0, count), style=style)
    return out


def render_detail(view: ViewModel, width: int) -> Text:
    focused = view.focus is Focus.DETAIL and not view.repo_input_open
    muted = DIM if focused else BORDER
    pr = view.selected_pr
    if pr is None:
        return Text("Select a PR and press enter to load details.", style=muted)

    label = review_label(view.review_decision)
    room = width - 2 - len(OPEN_HINT) - 1 - (len(label) + 2 if label else 0)
    out = Text(no_wrap=True, overflow="ellipsis")
    out.append(STATUS_DOT, style=faded(status_color(view.rollup_category), focused))
    out.append(" ")
    out.append(pr.title[: max(1, room)], style=f"bold {TEXT}" if focused else BORDER)
    if label:
        out.append("  ")
        out.append(label, style=faded(review_color(view.review_decision), focused))
    gap = width - out.cell_len - len(OPEN_HINT)
    out.append(" " * max(1, gap))
    out.append(OPEN_HINT, style=muted)
    out.append("\n\n")
    out.append_text(render_progress_bar(bar_segments(view, focused), width // 2))
    out.append("\n\n")

    rows = view.detail_rows
    if not rows:
        out.append("loading…" if view.loading_detail else "No checks or workflow runs yet.", style=muted)
        return out

    start, end = detail_window(view.detail_cursor, len(rows), MAX_VISIBLE_DETAIL_ROWS)
    for index in range(start, end):
        row = rows[index]
        selected = focused and index == view.detail_cursor
        line = Text()
        line.append(STATUS_DOT, style=faded(status_color(row.category), focused))
        line.append(f" {row.label}", style=(TEXT if selected else DIM) if focused else BORDER)
        if row.required:
            line.append(" " * max(1, width - line.cell_len - len("Required")))
            line.append("Required", style=muted)
        if selected:
            line.stylize("reverse")
        out.append_text(line)
        if index < end - 1:
            out.append("\n")
    hidden = len(rows) - end
    if hidden > 0:
        out.append(f"\n  ˅ {hidden} more", style=muted)
    return out


class DetailPanel(Static):
    """Lower pane: checks and workflow runs of the selected PR."""

    def __init__(self) -> None:
        super().__init__(id="detail")
        self._view: ViewModel | None = None

    def show(self, view: ViewModel) -> None:
        self._view = view
        self.update(render_detail(view, self.content_size.width or 80))

    def on_resize(self) -> None:
        if self._view is not None:
            self.show(self._view)
