from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from .models import Check, CheckCategory, WorkflowRun

# Stable sort order for lists of checks and runs.
CANONICAL_ORDER: tuple[CheckCategory, ...] = (
    CheckCategory.RUNNING,
    CheckCategory.QUEUED,
    CheckCategory.PENDING,
    CheckCategory.FAILED,
    CheckCategory.CANCELLED,
    CheckCategory.PASSED,
    CheckCategory.SKIPPED,
)

# Grouping order in the detail list: yellow, red, green, gray.
DISPLAY_ORDER: tuple[CheckCategory, ...] = (
    CheckCategory.RUNNING,
    CheckCategory.QUEUED,
    CheckCategory.PENDING,
    CheckCategory.FAILED,
    CheckCategory.PASSED,
    CheckCategory.CANCELLED,
    CheckCategory.SKIPPED,
)

IN_PROGRESS = frozenset({CheckCategory.RUNNING, CheckCategory.QUEUED, CheckCategory.PENDING})

_NOT_STARTED = frozenset({"waiting", "pending", "requested"})
_SKIPPED_CONCLUSIONS = frozenset({"neutral", "skipped"})


def classify_check_run(status: str, conclusion: str) -> CheckCategory:
    """Classify a check-run by its status and conclusion.

    Args:
        status: Provider status such as "queued", "in_progress" or "completed".
        conclusion: Provider conclusion, only meaningful once completed.

    Returns:
        The canonical category. Unknown in-progress statuses map to `running`
        and unknown conclusions map to `failed`.
    """
    if status != "completed":
        if status == "queued":
            return CheckCategory.QUEUED
        if status in _NOT_STARTED:
            return CheckCategory.PENDING
        return CheckCategory.RUNNING
    if conclusion == "success":
        return CheckCategory.PASSED
    if conclusion in _SKIPPED_CONCLUSIONS:
        return CheckCategory.SKIPPED
    if conclusion == "cancelled":
        return CheckCategory.CANCELLED
    return CheckCategory.FAILED


def classify_status_context(state: str) -> CheckCategory:
    """Classify a commit status context; unknown states are still undecided."""
    if state == "success":
        return CheckCategory.PASSED
    if state in ("failure", "error"):
        return CheckCategory.FAILED
    return CheckCategory.PENDING


def classify_workflow_run(status: str, conclusion: str) -> CheckCategory:
    """Classify a workflow run; same rules as check-runs."""
    if status == "queued":
        return CheckCategory.QUEUED
    return classify_check_run(status, conclusion)


def is_in_progress(category: CheckCategory) -> bool:
    return category in IN_PROGRESS


def canonical_rank(category: CheckCategory) -> int:
    return CANONICAL_ORDER.index(category)


def display_rank(category: CheckCategory) -> int:
    return DISPLAY_ORDER.index(category)


def rollup(checks: Iterable[Check], runs: Iterable[WorkflowRun]) -> CheckCategory:
    """Summarize checks and runs of one commit into a single category.

    Items are scanned checks first, then runs. The first in-progress item
    returns `running` straight away, so it masks failures seen elsewhere:
    `running` means the final state is not known yet.

    Args:
        checks: Checks attached to the commit.
        runs: Workflow runs triggered for the commit.

    Returns:
        `running`, `failed` or `passed`. Empty input yields `passed`.
    """
    has_failed = False
    for items in (checks, runs):
        for item in items:
            if item.category in IN_PROGRESS:
                return CheckCategory.RUNNING
            if item.category == CheckCategory.FAILED:
                has_failed = True
    return CheckCategory.FAILED if has_failed else CheckCategory.PASSED


def summarize(items: Iterable[Check | WorkflowRun]) -> dict[CheckCategory, int]:
    """Count items per category; every category is present, zero-filled."""
    counts = {category: 0 for category in CANONICAL_ORDER}
    for item in items:
        counts[item.category] += 1
    return counts


def mark_required(checks: Sequence[Check], required_names: Iterable[str]) -> list[Check]:
    """Flag checks listed as required by branch protection.

    A status context named `"context - description"` matches on its context
    part as well as on the full name.

    Args:
        checks: Checks as returned by the lightweight fetch.
        required_names: Names reported as required for the PR.

    Returns:
        A new list with `required` set; an unchanged copy when nothing is required.
    """
    required = {name.strip() for name in required_names if name.strip()}
    if not required:
        return list(checks)
    marked: list[Check] = []
    for check in checks:
        prefix = check.name.split(" - ", 1)[0]
        marked.append(replace(check, required=check.name in required or prefix in required))
    return marked
