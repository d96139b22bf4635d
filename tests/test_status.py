from __future__ import annotations

from datetime import datetime, timezone
from itertools import permutations

from prwatch.models import Check, CheckCategory, WorkflowRun
from prwatch.status import (
    classify_check_run,
    classify_status_context,
    classify_workflow_run,
    display_rank,
    is_in_progress,
    mark_required,
    rollup,
    summarize,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_check(category: CheckCategory, name: str = "build") -> Check:
    return Check(name=name, source="check-run", url="", status="", conclusion="", category=category)


def make_run(category: CheckCategory, run_id: int = 1) -> WorkflowRun:
    return WorkflowRun(
        id=run_id,
        name="CI",
        display_name="",
        event="push",
        status="",
        conclusion="",
        url="",
        created_at=T0,
        updated_at=T0,
        category=category,
    )


def test_classify_check_run_basic_cases() -> None:
    assert classify_check_run("completed", "success") == CheckCategory.PASSED
    assert classify_check_run("queued", "") == CheckCategory.QUEUED
    assert classify_check_run("in_progress", "") == CheckCategory.RUNNING
    assert classify_check_run("waiting", "") == CheckCategory.PENDING
    assert classify_check_run("requested", "") == CheckCategory.PENDING
    assert classify_check_run("completed", "skipped") == CheckCategory.SKIPPED
    assert classify_check_run("completed", "neutral") == CheckCategory.SKIPPED
    assert classify_check_run("completed", "cancelled") == CheckCategory.CANCELLED
    assert classify_check_run("completed", "timed_out") == CheckCategory.FAILED


def test_unknown_states_default_differently_per_source() -> None:
    assert classify_check_run("brand_new_status", "") == CheckCategory.RUNNING
    assert classify_workflow_run("brand_new_status", "") == CheckCategory.RUNNING
    assert classify_status_context("brand_new_state") == CheckCategory.PENDING


def test_classify_status_context() -> None:
    assert classify_status_context("success") == CheckCategory.PASSED
    assert classify_status_context("failure") == CheckCategory.FAILED
    assert classify_status_context("error") == CheckCategory.FAILED
    assert classify_status_context("pending") == CheckCategory.PENDING


def test_classify_workflow_run() -> None:
    assert classify_workflow_run("completed", "failure") == CheckCategory.FAILED
    assert classify_workflow_run("queued", "") == CheckCategory.QUEUED
    assert classify_workflow_run("completed", "success") == CheckCategory.PASSED


def test_rollup_empty_is_passed() -> None:
    assert rollup([], []) == CheckCategory.PASSED


def test_rollup_failed_wins_over_passed() -> None:
    checks = [make_check(CheckCategory.PASSED), make_check(CheckCategory.PASSED)]
    assert rollup(checks, [make_run(CheckCategory.FAILED)]) == CheckCategory.FAILED


def test_rollup_in_progress_masks_failure_in_any_order() -> None:
    assert rollup([make_check(CheckCategory.RUNNING)], [make_run(CheckCategory.FAILED)]) == CheckCategory.RUNNING
    assert rollup([make_check(CheckCategory.FAILED)], [make_run(CheckCategory.QUEUED)]) == CheckCategory.RUNNING
    cats = [CheckCategory.FAILED, CheckCategory.PENDING, CheckCategory.PASSED]
    for order in permutations(cats):
        assert rollup([make_check(c) for c in order], []) == CheckCategory.RUNNING


def test_rollup_ignores_skipped_and_cancelled() -> None:
    checks = [make_check(CheckCategory.SKIPPED), make_check(CheckCategory.CANCELLED)]
    assert rollup(checks, []) == CheckCategory.PASSED


def test_summarize_is_zero_filled() -> None:
    counts = summarize([make_check(CheckCategory.FAILED), make_run(CheckCategory.FAILED)])
    assert counts[CheckCategory.FAILED] == 2
    assert set(counts) == set(CheckCategory)
    assert sum(counts.values()) == 2


def test_display_rank_puts_passed_before_cancelled() -> None:
    assert display_rank(CheckCategory.PASSED) < display_rank(CheckCategory.CANCELLED)
    assert display_rank(CheckCategory.FAILED) < display_rank(CheckCategory.PASSED)
    assert is_in_progress(CheckCategory.QUEUED)
    assert not is_in_progress(CheckCategory.FAILED)


def test_mark_required_matches_full_name_and_context_prefix() -> None:
    checks = [
        make_check(CheckCategory.PASSED, "lint"),
        make_check(CheckCategory.PASSED, "ci/circleci - Your tests passed"),
        make_check(CheckCategory.PASSED, "docs"),
    ]
    marked = mark_required(checks, ["lint", "ci/circleci"])
    assert [c.required for c in marked] == [True, True, False]
    # Inputs are not mutated.
    assert not checks[0].required


def test_mark_required_without_names_is_noop() -> None:
    checks = [make_check(CheckCategory.PASSED, "lint")]
    assert mark_required(checks, []) == checks
    assert mark_required(checks, ["  "]) == checks
