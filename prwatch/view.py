from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .models import Check, CheckCategory, DetailData, PullRequest, ReviewDecision, WorkflowRun
from .navigation import Focus, NavigationState
from .status import display_rank


@dataclass(frozen=True)
class DetailRow:
    """One line of the detail list: a check or a workflow run."""

    label: str
    category: CheckCategory
    required: bool = False
    url: str = ""


def build_detail_rows(checks: Sequence[Check], runs: Sequence[WorkflowRun]) -> list[DetailRow]:
    """Merge checks and runs into one list grouped by display severity.

    Checks come before runs within a severity group (the sort is stable).
    """
    rows = [DetailRow(check.name, check.category, check.required, check.url) for check in checks]
    rows.extend(DetailRow(f"{run.display_name or run.name} (#{run.id})", run.category, False, run.url) for run in runs)
    return sorted(rows, key=lambda row: display_rank(row.category))


@dataclass(frozen=True)
class ViewModel:
    """Everything the renderer needs for one frame.

    Attributes:
        selected_index: Overview cursor (the highlighted row).
        selected_key: Identity of the confirmed PR, possibly no longer listed.
        rollups: Rollup per listed commit, keyed by `owner/repo@sha`.
        rollup_category: Displayed rollup of the selected PR.
    """

    viewer: str = ""
    repos: tuple[str, ...] = ()
    last_refresh: float | None = None
    loading_overview: bool = False
    loading_detail: bool = False
    prs: tuple[PullRequest, ...] = ()
    selected_index: int = 0
    selected_key: str | None = None
    selected_pr: PullRequest | None = None
    detail_checks: tuple[Check, ...] = ()
    detail_runs: tuple[WorkflowRun, ...] = ()
    review_decision: ReviewDecision = ReviewDecision.UNKNOWN
    detail_cursor: int = 0
    focus: Focus = Focus.OVERVIEW
    rollups: Mapping[str, CheckCategory] = field(default_factory=dict)
    rollup_category: CheckCategory = CheckCategory.PENDING
    info_text: str = ""
    error_text: str = ""
    booting: bool = False
    repo_input_open: bool = False
    detail_rows: tuple[DetailRow, ...] = ()


def build_view_model(
    *,
    viewer: str,
    repos: Sequence[str],
    last_refresh: float | None,
    loading_overview: bool,
    loading_detail: bool,
    prs: Sequence[PullRequest],
    navigation: NavigationState,
    selected_pr: PullRequest | None,
    detail: DetailData | None,
    rollups: Mapping[str, CheckCategory],
    rollup_category: CheckCategory,
    info_text: str = "",
    error_text: str = "",
    booting: bool = False,
    repo_input_open: bool = False,
) -> ViewModel:
    """Assemble an immutable view model from orchestrator and navigation state."""
    checks = tuple(detail.checks) if detail is not None else ()
    runs = tuple(detail.runs) if detail is not None else ()
    rows = tuple(build_detail_rows(checks, runs))
    detail_cursor = max(0, min(navigation.detail_cursor, len(rows) - 1)) if rows else 0
    return ViewModel(
        viewer=viewer,
        repos=tuple(repos),
        last_refresh=last_refresh,
        loading_overview=loading_overview,
        loading_detail=loading_detail,
        prs=tuple(prs),
        selected_index=navigation.overview_cursor,
        selected_key=navigation.selected_key,
        selected_pr=selected_pr,
        detail_checks=checks,
        detail_runs=runs,
        review_decision=detail.review_decision if detail is not None else ReviewDecision.UNKNOWN,
        detail_cursor=detail_cursor,
        focus=navigation.focus,
        rollups=dict(rollups),
        rollup_category=rollup_category,
        info_text=info_text,
        error_text=error_text,
        booting=booting,
        repo_input_open=repo_input_open,
        detail_rows=rows,
    )
