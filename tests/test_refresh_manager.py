from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from prwatch.cache import QueryStore
from prwatch.config import AppConfig
from prwatch.github import ProviderError
from prwatch.models import Check, CheckCategory, DetailMeta, PullRequest, ReviewDecision, WorkflowRun, pr_key, rollup_key
from prwatch.refresh import RefreshManager, detail_cache_key, rollup_cache_key

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_pr(n: int, sha: str | None = None, repo: str = "r") -> PullRequest:
    return PullRequest(
        number=n,
        title=f"PR {n}",
        url=f"https://github.com/o/{repo}/pull/{n}",
        owner="o",
        repo=repo,
        head_sha=sha or f"sha{n}",
        draft=False,
        updated_at=T0 + timedelta(hours=n),
    )


def check(category: CheckCategory, name: str = "build") -> Check:
    return Check(name=name, source="check-run", url="", status="", conclusion="", category=category)


def run(run_id: int, category: CheckCategory) -> WorkflowRun:
    return WorkflowRun(
        id=run_id,
        name="CI",
        display_name="",
        event="push",
        status="completed",
        conclusion="failure" if category == CheckCategory.FAILED else "success",
        url="",
        created_at=T0,
        updated_at=T0,
        category=category,
    )


class FakeProvider:
    def __init__(self) -> None:
        self.viewer = "me"
        self.prs: list[PullRequest] = [make_pr(2), make_pr(1)]
        self.sha_checks: dict[str, list[Check]] = {}
        self.pr_checks: dict[int, list[Check]] = {}
        self.pr_runs: dict[int, list[WorkflowRun]] = {}
        self.meta = DetailMeta(review_decision=ReviewDecision.APPROVED, required_check_names=["build"])
        self.calls: Counter[str] = Counter()
        self.fail: set[str] = set()
        self.detail_gate: asyncio.Event | None = None
        self.reruns: list[tuple[str, str, list[int]]] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls[name] += 1
        if name in self.fail:
            raise ProviderError(f"{name} failed")

    async def get_viewer(self) -> str:
        self._maybe_fail("viewer")
        return self.viewer

    async def list_authored_prs(self, repo_identifiers: list[str], author: str) -> list[PullRequest]:
        self._maybe_fail("list")
        return list(self.prs)

    async def get_checks_for_sha(self, owner: str, repo: str, sha: str) -> list[Check]:
        self._maybe_fail("sha_checks")
        return self.sha_checks.get(sha, [check(CheckCategory.PASSED)])

    async def get_workflow_runs_for_sha(self, owner: str, repo: str, sha: str) -> list[WorkflowRun]:
        self._maybe_fail("sha_runs")
        return []

    async def get_pr_checks(self, owner: str, repo: str, number: int) -> list[Check]:
        self._maybe_fail("pr_checks")
        if self.detail_gate is not None:
            await self.detail_gate.wait()
        return self.pr_checks.get(number, [check(CheckCategory.PASSED)])

    async def get_pr_workflow_runs(self, owner: str, repo: str, number: int) -> list[WorkflowRun]:
        self._maybe_fail("pr_runs")
        return self.pr_runs.get(number, [])

    async def get_pr_detail_meta(self, owner: str, repo: str, number: int) -> DetailMeta:
        self._maybe_fail("meta")
        return self.meta

    async def rerun_failed_workflow_runs(self, owner: str, repo: str, ids: list[int]) -> int:
        self._maybe_fail("rerun")
        self.reruns.append((owner, repo, ids))
        return len(ids)

    async def open_pr_in_browser(self, owner: str, repo: str, number: int) -> None:
        self._maybe_fail("open")


def make_manager(provider: FakeProvider, repos: list[str] | None = None, **kwargs) -> RefreshManager:
    cfg = AppConfig(repos=["o/r"] if repos is None else repos, refresh_seconds=5)
    return RefreshManager(
        provider,
        QueryStore(clock=FakeClock()),
        config_loader=lambda: cfg,
        retry_delay=0,
        **kwargs,
    )


async def settle(manager: RefreshManager) -> None:
    """Run the current tick and every fetch it (transitively) starts."""
    manager.tick()
    for _ in range(20):
        pending = [t for t in manager._tasks if not t.done()]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)


@pytest.mark.asyncio
async def test_bootstrap_then_list_then_rollups() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)

    assert manager.configured
    assert manager.viewer == "me"
    assert manager.repos == ["o/r"]
    assert [p.number for p in manager.prs] == [2, 1]
    assert manager.rollups() == {rollup_key(pr): CheckCategory.PASSED for pr in provider.prs}
    assert manager.last_refresh == 1000.0
    assert not manager.loading_overview
    assert manager.error_text == ""


@pytest.mark.asyncio
async def test_no_repos_means_no_list_fetch() -> None:
    provider = FakeProvider()
    manager = make_manager(provider, repos=[])
    await settle(manager)
    assert manager.configured
    assert provider.calls["list"] == 0
    assert manager.prs == []


@pytest.mark.asyncio
async def test_prs_sharing_a_commit_share_one_rollup_query() -> None:
    provider = FakeProvider()
    provider.prs = [make_pr(1, sha="same"), make_pr(2, sha="same")]
    manager = make_manager(provider)
    await settle(manager)
    assert provider.calls["sha_checks"] == 1
    assert manager.store.keys(("rollup",)) == [("rollup", "o", "r", "same")]


@pytest.mark.asyncio
async def test_rollups_for_unlisted_commits_are_torn_down() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    provider.prs = [make_pr(2)]
    manager.refresh_now()
    await settle(manager)
    assert manager.store.keys(("rollup",)) == [rollup_cache_key(make_pr(2))]


@pytest.mark.asyncio
async def test_repeated_ticks_reuse_fresh_data() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    await settle(manager)
    await settle(manager)
    assert provider.calls["list"] == 1
    assert provider.calls["viewer"] == 1


@pytest.mark.asyncio
async def test_list_polls_on_interval() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    manager.store._clock.now += 5  # type: ignore[attr-defined]
    await settle(manager)
    assert provider.calls["list"] == 2


@pytest.mark.asyncio
async def test_polling_disabled_suspends_list_fetches() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    manager.set_polling_enabled(False)
    manager.store._clock.now += 60  # type: ignore[attr-defined]
    await settle(manager)
    assert provider.calls["list"] == 1
    manager.set_polling_enabled(True)
    await settle(manager)
    assert provider.calls["list"] == 2


@pytest.mark.asyncio
async def test_detail_rollup_overrides_polled_rollup() -> None:
    provider = FakeProvider()
    provider.pr_checks[1] = [check(CheckCategory.PASSED, "build")]
    provider.pr_runs[1] = [run(7, CheckCategory.FAILED)]
    manager = make_manager(provider)
    await settle(manager)
    pr = make_pr(1)
    assert manager.rollups()[rollup_key(pr)] == CheckCategory.PASSED

    manager.select(pr_key(pr))
    await settle(manager)

    detail = manager.detail
    assert detail is not None
    assert detail.rollup_category == CheckCategory.FAILED
    assert detail.review_decision == ReviewDecision.APPROVED
    assert detail.checks[0].required is True
    assert manager.store.data(rollup_cache_key(pr)) == CheckCategory.FAILED
    assert manager.rollups()[rollup_key(pr)] == CheckCategory.FAILED
    assert manager.displayed_rollup() == CheckCategory.FAILED


@pytest.mark.asyncio
async def test_displayed_rollup_falls_back_to_rollup_tier_then_pending() -> None:
    provider = FakeProvider()
    provider.fail.add("pr_checks")
    manager = make_manager(provider)
    assert manager.displayed_rollup() == CheckCategory.PENDING
    await settle(manager)
    manager.select(pr_key(make_pr(1)))
    await settle(manager)
    assert manager.detail is None
    assert manager.displayed_rollup() == CheckCategory.PASSED
    assert "pr_checks failed" in manager.error_text


@pytest.mark.asyncio
async def test_reselecting_same_pr_refetches_detail() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    key = pr_key(make_pr(1))
    manager.select(key)
    await settle(manager)
    manager.select(key)
    await settle(manager)
    assert provider.calls["pr_checks"] == 2


@pytest.mark.asyncio
async def test_detail_for_previous_selection_is_dropped() -> None:
    provider = FakeProvider()
    provider.pr_runs[1] = [run(7, CheckCategory.FAILED)]
    manager = make_manager(provider)
    await settle(manager)

    provider.detail_gate = asyncio.Event()
    manager.select(pr_key(make_pr(1)))
    await asyncio.sleep(0)
    manager.select(pr_key(make_pr(2)))
    provider.detail_gate.set()
    await settle(manager)

    assert manager.store.get(detail_cache_key(make_pr(1))) is None
    assert manager.store.data(rollup_cache_key(make_pr(1))) == CheckCategory.PASSED
    assert manager.detail is not None
    assert manager.selected_pr == make_pr(2)


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_prs() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    provider.fail.add("list")
    manager.refresh_now()
    await settle(manager)
    assert [p.number for p in manager.prs] == [2, 1]
    assert "list failed" in manager.error_text

    provider.fail.clear()
    manager.refresh_now()
    await settle(manager)
    assert manager.error_text == ""


@pytest.mark.asyncio
async def test_bootstrap_failure_is_reported_and_retried_on_refresh() -> None:
    provider = FakeProvider()
    provider.fail.add("viewer")
    manager = make_manager(provider)
    await settle(manager)
    assert not manager.configured
    assert provider.calls["viewer"] == 3
    assert "viewer failed" in manager.error_text

    provider.fail.clear()
    manager.refresh_now()
    await settle(manager)
    assert manager.configured


@pytest.mark.asyncio
async def test_update_repos_clears_selection_and_switches_list_key() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    manager.select(pr_key(make_pr(1)))
    await settle(manager)

    provider.prs = [make_pr(5, repo="other")]
    manager.update_repos(["o/other"])
    await settle(manager)

    assert manager.selected_key is None
    assert manager.store.keys(("detail",)) == []
    assert [p.number for p in manager.prs] == [5]
    assert manager.prs_key() == ("prs", ("o/other",), "me")
    assert manager.store.keys(("prs",)) == [manager.prs_key()]


@pytest.mark.asyncio
async def test_update_repos_does_not_accumulate_list_entries() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    for repos in (["o/a"], ["o/b"], ["o/r"]):
        manager.update_repos(repos)
        await settle(manager)
    assert manager.store.keys(("prs",)) == [("prs", ("o/r",), "me")]


@pytest.mark.asyncio
async def test_rerun_failed_patches_detail_optimistically() -> None:
    provider = FakeProvider()
    provider.pr_runs[1] = [run(7, CheckCategory.FAILED), run(8, CheckCategory.PASSED)]
    manager = make_manager(provider, rerun_reconcile_seconds=3600)
    await settle(manager)
    manager.select(pr_key(make_pr(1)))
    await settle(manager)
    list_calls = provider.calls["list"]

    message = await manager.rerun_failed()

    assert message == "Requested rerun for 1 failed workflow run"
    assert provider.reruns == [("o", "r", [7])]
    detail = manager.detail
    assert detail is not None
    rerun, untouched = detail.runs
    assert rerun.category == CheckCategory.PENDING
    assert rerun.status == "requested"
    assert rerun.conclusion == ""
    assert untouched.category == CheckCategory.PASSED
    assert detail.rollup_category == CheckCategory.RUNNING
    assert provider.calls["pr_checks"] == 1

    await settle(manager)
    assert provider.calls["list"] == list_calls + 1
    await manager.stop()


@pytest.mark.asyncio
async def test_rerun_failed_reconciles_detail_after_delay() -> None:
    provider = FakeProvider()
    provider.pr_runs[1] = [run(7, CheckCategory.FAILED)]
    manager = make_manager(provider, rerun_reconcile_seconds=0)
    await settle(manager)
    manager.select(pr_key(make_pr(1)))
    await settle(manager)
    await manager.rerun_failed()
    await asyncio.gather(*manager._reconciles)
    await settle(manager)
    assert provider.calls["pr_checks"] == 2


@pytest.mark.asyncio
async def test_rerun_failed_without_selection_or_failures() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    assert await manager.rerun_failed() == "Select a PR to rerun failed actions"
    manager.select(pr_key(make_pr(1)))
    await settle(manager)
    assert await manager.rerun_failed() == "No failed workflow runs to rerun"
    assert provider.calls["rerun"] == 0


@pytest.mark.asyncio
async def test_rerun_failure_leaves_cache_untouched() -> None:
    provider = FakeProvider()
    provider.pr_runs[1] = [run(7, CheckCategory.FAILED)]
    provider.fail.add("rerun")
    manager = make_manager(provider)
    await settle(manager)
    manager.select(pr_key(make_pr(1)))
    await settle(manager)
    before = manager.detail

    with pytest.raises(ProviderError):
        await manager.rerun_failed()
    assert manager.detail == before
    assert provider.calls["rerun"] == 1


@pytest.mark.asyncio
async def test_open_selected() -> None:
    provider = FakeProvider()
    manager = make_manager(provider)
    await settle(manager)
    assert await manager.open_selected() == "Select a PR to open it in the browser"
    manager.select(pr_key(make_pr(1)))
    assert await manager.open_selected() is None
    assert provider.calls["open"] == 1


@pytest.mark.asyncio
async def test_start_and_stop_tick_loop() -> None:
    provider = FakeProvider()
    manager = make_manager(provider, tick_seconds=0.01)
    manager.start()
    for _ in range(100):
        if manager.prs:
            break
        await asyncio.sleep(0.01)
    await manager.stop()
    assert [p.number for p in manager.prs] == [2, 1]
