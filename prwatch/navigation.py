from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum

from .models import PullRequest, pr_key


class Focus(str, Enum):
    OVERVIEW = "overview"
    DETAIL = "detail"


@dataclass(frozen=True)
class NavigationState:
    """Selection and focus of the two panes.

    The selected PR is tracked by key, never by position; the overview cursor
    follows that key when the list reorders.
    """

    focus: Focus = Focus.OVERVIEW
    selected_key: str | None = None
    overview_cursor: int = 0
    detail_cursor: int = 0


def _clamp(index: int, count: int) -> int:
    if count <= 0:
        return 0
    return max(0, min(index, count - 1))


def _with(state: NavigationState, **changes: object) -> NavigationState:
    if all(getattr(state, name) == value for name, value in changes.items()):
        return state
    return replace(state, **changes)  # type: ignore[arg-type]


def reconcile(state: NavigationState, prs: Sequence[PullRequest]) -> NavigationState:
    """Re-anchor the overview cursor after the PR list was refreshed.

    If the selected PR is still listed the cursor snaps to it. Otherwise the
    cursor is clamped and the (now stale) selection key is kept.
    """
    if not prs:
        return _with(state, overview_cursor=0)
    if state.selected_key is not None:
        for index, pr in enumerate(prs):
            if pr_key(pr) == state.selected_key:
                return _with(state, overview_cursor=index)
    return _with(state, overview_cursor=_clamp(state.overview_cursor, len(prs)))


def move_overview(state: NavigationState, delta: int, count: int) -> NavigationState:
    if count <= 0:
        return state
    return _with(state, overview_cursor=_clamp(state.overview_cursor + delta, count))


def move_detail(state: NavigationState, delta: int, count: int) -> NavigationState:
    if count <= 0:
        return state
    return _with(state, detail_cursor=_clamp(state.detail_cursor + delta, count))


def confirm(state: NavigationState, prs: Sequence[PullRequest]) -> NavigationState:
    """Select the highlighted PR and move focus to the detail pane.

    Returns the state unchanged when the list is empty. Confirming the
    already-selected PR still yields a state the caller must treat as a new
    selection (the detail tier is refetched either way).
    """
    if not prs:
        return state
    cursor = _clamp(state.overview_cursor, len(prs))
    return _with(
        state,
        selected_key=pr_key(prs[cursor]),
        overview_cursor=cursor,
        detail_cursor=0,
        focus=Focus.DETAIL,
    )


def toggle_focus(state: NavigationState) -> NavigationState:
    return replace(state, focus=Focus.DETAIL if state.focus == Focus.OVERVIEW else Focus.OVERVIEW)


def set_focus(state: NavigationState, focus: Focus) -> NavigationState:
    return _with(state, focus=focus)


def reset_for_repos(state: NavigationState) -> NavigationState:
    """Forget the selection when the watched repositories change."""
    return _with(state, selected_key=None, overview_cursor=0, detail_cursor=0)


def point_overview(state: NavigationState, index: int, count: int) -> NavigationState:
    """Put the overview cursor on an absolute row, e.g. from a click."""
    if count <= 0:
        return state
    return _with(state, overview_cursor=_clamp(index, count))


def point_detail(state: NavigationState, index: int, count: int) -> NavigationState:
    if count <= 0:
        return state
    return _with(state, detail_cursor=_clamp(index, count))
