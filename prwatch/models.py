from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class CheckCategory(str, Enum):
    """Canonical state a check, workflow run or rollup can occupy."""

    RUNNING = "running"
    QUEUED = "queued"
    PENDING = "pending"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PASSED = "passed"
    SKIPPED = "skipped"


class ReviewDecision(str, Enum):
    APPROVED = "APPROVED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def normalize(cls, value: object) -> ReviewDecision:
        """Map a provider value to a known decision, defaulting to UNKNOWN."""
        for member in cls:
            if member.value == value:
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class PullRequest:
    """An open pull request authored by the viewer.

    Attributes:
        number: Pull request number.
        title: PR title.
        url: Web URL to the PR.
        owner: Repository owner/org login.
        repo: Repository name.
        head_sha: Commit SHA the PR head currently points at.
        draft: Whether the PR is marked as draft.
        updated_at: Last update time reported by the provider.
    """

    number: int
    title: str
    url: str
    owner: str
    repo: str
    head_sha: str
    draft: bool
    updated_at: datetime = EPOCH


@dataclass(frozen=True)
class Check:
    name: str
    source: str
    url: str
    status: str
    conclusion: str
    category: CheckCategory
    required: bool = False


@dataclass(frozen=True)
class WorkflowRun:
    id: int
    name: str
    display_name: str
    event: str
    status: str
    conclusion: str
    url: str
    created_at: datetime
    updated_at: datetime
    category: CheckCategory


@dataclass(frozen=True)
class DetailMeta:
    review_decision: ReviewDecision = ReviewDecision.UNKNOWN
    required_check_names: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DetailData:
    """Payload cached in the detail tier for the selected PR."""

    checks: list[Check]
    runs: list[WorkflowRun]
    review_decision: ReviewDecision
    rollup_category: CheckCategory


def pr_key(pr: PullRequest) -> str:
    """Return the stable selection identity `owner/repo#number`."""
    return f"{pr.owner}/{pr.repo}#{pr.number}"


def rollup_key(pr: PullRequest) -> str:
    """Return the commit identity `owner/repo@sha` used to share rollups."""
    return f"{pr.owner}/{pr.repo}@{pr.head_sha}"
