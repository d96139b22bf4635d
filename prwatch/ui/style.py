from __future__ import annotations

from ..models import CheckCategory, ReviewDecision

STATUS_DOT = "●"

TEXT = "bright_white"
DIM = "grey62"
BORDER = "grey35"
YELLOW = "yellow"
GREEN = "green"
RED = "red"


def status_color(category: CheckCategory | None) -> str:
    """Colour of a status dot; unknown rollups are dim."""
    if category in (CheckCategory.RUNNING, CheckCategory.QUEUED, CheckCategory.PENDING):
        return YELLOW
    if category == CheckCategory.PASSED:
        return GREEN
    if category == CheckCategory.FAILED:
        return RED
    return DIM


def review_color(decision: ReviewDecision) -> str:
    return {
        ReviewDecision.APPROVED: GREEN,
        ReviewDecision.CHANGES_REQUESTED: RED,
        ReviewDecision.REVIEW_REQUIRED: YELLOW,
    }.get(decision, DIM)


def review_label(decision: ReviewDecision) -> str:
    return {
        ReviewDecision.APPROVED: "Approved √",
        ReviewDecision.CHANGES_REQUESTED: "Changes requested",
        ReviewDecision.REVIEW_REQUIRED: "Review required",
    }.get(decision, "")


def faded(color: str, focused: bool) -> str:
    return color if focused else f"dim {color}"
