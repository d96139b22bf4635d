from __future__ import annotations

from datetime import datetime
from typing import Any

from .models import EPOCH, Check, DetailMeta, PullRequest, ReviewDecision, WorkflowRun
from .status import canonical_rank, classify_check_run, classify_status_context, classify_workflow_run


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 provider timestamp, falling back to the epoch."""
    if not isinstance(value, str):
        return EPOCH
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return EPOCH
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=EPOCH.tzinfo)


def parse_viewer(payload: Any) -> str:
    """Extract the viewer login from a `/user` response.

    Raises:
        ValueError: If the login is missing or blank.
    """
    login = _str(payload.get("login")) if isinstance(payload, dict) else ""
    if not login.strip():
        raise ValueError("viewer login is empty")
    return login


def parse_pull_requests(payload: Any, owner: str, repo: str, author: str | None = None) -> list[PullRequest]:
    """Build `PullRequest` objects from a `/pulls` listing.

    Items without a number, title or URL are skipped. When `author` is given,
    only PRs opened by that login are kept.

    Args:
        payload: Decoded JSON list.
        owner: Repository owner the listing belongs to.
        repo: Repository name the listing belongs to.
        author: Optional login filter.

    Returns:
        PRs sorted by `updated_at`, most recent first.
    """
    prs: list[PullRequest] = []
    for item in payload if isinstance(payload, list) else []:
        if not isinstance(item, dict):
            continue
        number, title, url = item.get("number"), item.get("title"), item.get("html_url")
        if not isinstance(number, int) or not isinstance(title, str) or not isinstance(url, str):
            continue
        if author is not None and _str((item.get("user") or {}).get("login")) != author:
            continue
        prs.append(
            PullRequest(
                number=number,
                title=title,
                url=url,
                owner=owner,
                repo=repo,
                head_sha=_str((item.get("head") or {}).get("sha")),
                draft=bool(item.get("draft", False)),
                updated_at=parse_timestamp(item.get("updated_at")),
            )
        )
    prs.sort(key=lambda p: p.updated_at, reverse=True)
    return prs


def parse_checks(check_runs: list[Any], statuses: list[Any]) -> list[Check]:
    """Merge check-runs and commit status contexts into one sorted list.

    Args:
        check_runs: Items of the `check_runs` array (all pages).
        statuses: Items of the combined status `statuses` array.

    Returns:
        Checks in canonical category order, then by name.
    """
    out: list[Check] = []
    for run in check_runs:
        if not isinstance(run, dict):
            continue
        status = _str(run.get("status"))
        conclusion = _str(run.get("conclusion"))
        out.append(
            Check(
                name=_str(run.get("name"), "unnamed check"),
                source=_str((run.get("app") or {}).get("name"), "check-run"),
                url=_str(run.get("html_url")),
                status=status,
                conclusion=conclusion,
                category=classify_check_run(status, conclusion),
            )
        )
    for item in statuses:
        if not isinstance(item, dict):
            continue
        state = _str(item.get("state"))
        context = _str(item.get("context"), "status")
        description = _str(item.get("description"))
        out.append(
            Check(
                name=f"{context} - {description}" if description else context,
                source="status",
                url=_str(item.get("target_url")),
                status=state,
                conclusion=state,
                category=classify_status_context(state),
            )
        )
    out.sort(key=lambda c: (canonical_rank(c.category), c.name))
    return out


def parse_workflow_runs(payload: Any) -> list[WorkflowRun]:
    """Build `WorkflowRun` objects from an `actions/runs` response.

    Returns:
        Runs in canonical category order, most recently updated first within
        a category.
    """
    items = payload.get("workflow_runs", []) if isinstance(payload, dict) else []
    runs: list[WorkflowRun] = []
    for item in items or []:
        if not isinstance(item, dict) or not isinstance(item.get("id"), int):
            continue
        status = _str(item.get("status"))
        conclusion = _str(item.get("conclusion"))
        runs.append(
            WorkflowRun(
                id=item["id"],
                name=_str(item.get("name")),
                display_name=_str(item.get("display_title")),
                event=_str(item.get("event")),
                status=status,
                conclusion=conclusion,
                url=_str(item.get("html_url")),
                created_at=parse_timestamp(item.get("created_at")),
                updated_at=parse_timestamp(item.get("updated_at")),
                category=classify_workflow_run(status, conclusion),
            )
        )
    # Two stable passes: recency inside a category, then category rank.
    runs.sort(key=lambda r: r.updated_at, reverse=True)
    runs.sort(key=lambda r: canonical_rank(r.category))
    return runs


def parse_pr_detail_meta(payload: Any) -> DetailMeta:
    """Read the review decision and required check names of a PR.

    Accepts either a flat object with `reviewDecision` and `statusCheckRollup`
    or the GraphQL `pullRequest` node, where the rollup hangs off the last
    commit.
    """
    if not isinstance(payload, dict):
        return DetailMeta()
    rollup = payload.get("statusCheckRollup")
    if rollup is None:
        nodes = ((payload.get("commits") or {}).get("nodes")) or []
        if nodes and isinstance(nodes[-1], dict):
            rollup = (nodes[-1].get("commit") or {}).get("statusCheckRollup")
    return DetailMeta(
        review_decision=ReviewDecision.normalize(payload.get("reviewDecision")),
        required_check_names=collect_required_check_names(rollup),
    )


def collect_required_check_names(rollup: Any) -> list[str]:
    """Names of rollup contexts flagged `isRequired` (or `required`)."""
    candidates: list[Any] = []
    if isinstance(rollup, list):
        candidates.extend(rollup)
    elif isinstance(rollup, dict):
        contexts = rollup.get("contexts")
        if isinstance(contexts, list):
            candidates.extend(contexts)
        elif isinstance(contexts, dict) and isinstance(contexts.get("nodes"), list):
            candidates.extend(contexts["nodes"])

    names: list[str] = []
    for node in candidates:
        if not isinstance(node, dict):
            continue
        if node.get("isRequired") is not True and node.get("required") is not True:
            continue
        name = _str(node.get("name")) or _str(node.get("context"))
        if name.strip() and name.strip() not in names:
            names.append(name.strip())
    return names
