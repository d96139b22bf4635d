from __future__ import annotations

from prwatch.layout import (
    MAX_VISIBLE_DETAIL_ROWS,
    STATUS_PREFIX_WIDTH,
    TIMESTAMP_WIDTH,
    detail_window,
    display_title,
    layout_overview,
    overview_widths,
    wrap_words,
)
from prwatch.models import PullRequest


def make_pr(n: int, title: str, draft: bool = False) -> PullRequest:
    return PullRequest(
        number=n, title=title, url="", owner="o", repo="r", head_sha=f"sha{n}", draft=draft
    )


def test_wrap_words_uses_narrow_first_line() -> None:
    assert wrap_words("alpha beta gamma", 10, 20) == ["alpha beta", "gamma"]
    assert wrap_words("alpha beta gamma", 10, 20) == wrap_words("alpha beta gamma", 10, 20)
    assert wrap_words("alpha beta gamma delta", 5, 11) == ["alpha", "beta gamma", "delta"]


def test_wrap_words_splits_long_words() -> None:
    assert wrap_words("abcdefghij", 4, 6) == ["abcd", "efghij"]
    assert wrap_words("abcdefghijklm", 4, 6) == ["abcd", "efghij", "klm"]


def test_wrap_words_edge_cases() -> None:
    assert wrap_words("", 10, 10) == [""]
    assert wrap_words("   spaced    out   ", 20, 20) == ["spaced out"]
    assert wrap_words("ab", 0, 0) == ["a", "b"]


def test_overview_widths() -> None:
    assert overview_widths(80) == (80 - STATUS_PREFIX_WIDTH - TIMESTAMP_WIDTH, 80 - STATUS_PREFIX_WIDTH)
    assert overview_widths(3) == (1, 1)


def test_layout_overview_accumulates_row_heights() -> None:
    prs = [
        make_pr(1, "short"),
        make_pr(2, "a title long enough to wrap onto more lines"),
        make_pr(3, "tiny", draft=True),
    ]
    rows = layout_overview(prs, 30)
    first, rest = overview_widths(30)
    assert [r.top for r in rows] == [0, 1, 1 + rows[1].height]
    assert rows[1].lines == tuple(wrap_words(prs[1].title, first, rest))
    assert rows[1].height > 1
    assert rows[2].lines[0].startswith("[draft] ")
    assert display_title(prs[2]) == "[draft] tiny"
    assert rows[1].contains(1) and not rows[1].contains(0)


def test_detail_window_centres_and_clamps() -> None:
    assert MAX_VISIBLE_DETAIL_ROWS == 12
    assert detail_window(0, 5) == (0, 5)
    assert detail_window(0, 30) == (0, 12)
    assert detail_window(10, 30) == (4, 16)
    assert detail_window(29, 30) == (18, 30)
    assert detail_window(3, 0) == (0, 0)
