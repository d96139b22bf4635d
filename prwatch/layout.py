"""Layout geometry shared by the renderer and the mouse hit-tester.

Both sides call the same functions so a clicked cell always maps to the row
that was painted there.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .models import PullRequest

# "> " cursor, a space, the status dot and a space.
STATUS_PREFIX_WIDTH = 5
# A space plus up to seven characters of relative time ("2d 23h").
TIMESTAMP_WIDTH = 8
DRAFT_MARKER = "[draft] "
MAX_VISIBLE_DETAIL_ROWS = 12


@dataclass(frozen=True)
class OverviewRow:
    """Placement of one PR in the overview pane.

    Attributes:
        index: Position of the PR in the list.
        top: Pane-relative line where the row starts.
        lines: Wrapped title lines; the first also carries the timestamp.
    """

    index: int
    top: int
    lines: tuple[str, ...]

    @property
    def height(self) -> int:
        return max(1, len(self.lines))

    def contains(self, line: int) -> bool:
        return self.top <= line < self.top + self.height


def wrap_words(text: str, first_width: int, rest_width: int) -> list[str]:
    """Greedily word-wrap `text` with a narrower first line.

    Words longer than a line are split hard. Widths below 1 are treated as 1.

    Args:
        text: Text to wrap; runs of whitespace collapse to one space.
        first_width: Width available on the first line.
        rest_width: Width available on continuation lines.

    Returns:
        At least one line (an empty string for empty text).
    """
    first_width = max(1, first_width)
    rest_width = max(1, rest_width)
    lines: list[str] = []
    current = ""
    for word in text.split():
        while word:
            width = rest_width if lines else first_width
            if not current:
                if len(word) <= width:
                    current, word = word, ""
                else:
                    lines.append(word[:width])
                    word = word[width:]
            elif len(current) + 1 + len(word) <= width:
                current, word = f"{current} {word}", ""
            else:
                lines.append(current)
                current = ""
    if current or not lines:
        lines.append(current)
    return lines


def overview_widths(pane_width: int) -> tuple[int, int]:
    """Title widths of the first and the continuation lines of an overview row."""
    return (
        max(1, pane_width - STATUS_PREFIX_WIDTH - TIMESTAMP_WIDTH),
        max(1, pane_width - STATUS_PREFIX_WIDTH),
    )


def display_title(pr: PullRequest) -> str:
    return f"{DRAFT_MARKER}{pr.title}" if pr.draft else pr.title


def layout_overview(prs: Sequence[PullRequest], pane_width: int) -> list[OverviewRow]:
    """Wrap every PR title and stack the rows from the top of the pane."""
    first, rest = overview_widths(pane_width)
    rows: list[OverviewRow] = []
    top = 0
    for index, pr in enumerate(prs):
        row = OverviewRow(index=index, top=top, lines=tuple(wrap_words(display_title(pr), first, rest)))
        rows.append(row)
        top += row.height
    return rows


def detail_window(cursor: int, count: int, max_visible: int = MAX_VISIBLE_DETAIL_ROWS) -> tuple[int, int]:
    """Visible slice `[start, end)` of the detail list, centred on the cursor.

    The window never runs past either end of the list.
    """
    if count <= 0:
        return 0, 0
    start = max(0, min(cursor - max_visible // 2, count - max_visible))
    return start, min(count, start + max_visible)
