from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, replace
from typing import Any, Protocol

from .cache import Key, QueryStore, TierPolicy, decide, mutate_then_reconcile
from .config import DEFAULT_REFRESH_SECONDS, AppConfig, load_config
from .models import (
    Check,
    CheckCategory,
    DetailData,
    DetailMeta,
    PullRequest,
    WorkflowRun,
    pr_key,
    rollup_key,
)
from .status import mark_required, rollup

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0
ROLLUP_STALE_SECONDS = 20.0
DETAIL_REFETCH_SECONDS = 15.0
RERUN_RECONCILE_SECONDS = 4.0

BOOTSTRAP_KEY: Key = ("bootstrap",)

BOOTSTRAP_POLICY = TierPolicy("bootstrap", stale_after=None, retries=2)
ROLLUP_POLICY = TierPolicy("rollup", stale_after=ROLLUP_STALE_SECONDS, retries=1)
DETAIL_POLICY = TierPolicy("detail", stale_after=0.0, refetch_interval=DETAIL_REFETCH_SECONDS, retries=1)


class DataProvider(Protocol):
    async def get_viewer(self) -> str: ...
    async def list_authored_prs(self, repo_identifiers: list[str], author: str) -> list[PullRequest]: ...
    async def get_checks_for_sha(self, owner: str, repo: str, sha: str) -> list[Check]: ...
    async def get_workflow_runs_for_sha(self, owner: str, repo: str, sha: str) -> list[WorkflowRun]: ...
    async def get_pr_checks(self, owner: str, repo: str, number: int) -> list[Check]: ...
    async def get_pr_workflow_runs(self, owner: str, repo: str, number: int) -> list[WorkflowRun]: ...
    async def get_pr_detail_meta(self, owner: str, repo: str, number: int) -> DetailMeta: ...
    async def rerun_failed_workflow_runs(self, owner: str, repo: str, ids: list[int]) -> int: ...
    async def open_pr_in_browser(self, owner: str, repo: str, number: int) -> None: ...


@dataclass(frozen=True)
class Bootstrap:
    viewer: str
    repos: list[str]
    refresh_seconds: int


def list_policy(refresh_seconds: int) -> TierPolicy:
    return TierPolicy("prs", stale_after=0.0, refetch_interval=float(refresh_seconds))


def rollup_cache_key(pr: PullRequest) -> Key:
    return ("rollup", pr.owner, pr.repo, pr.head_sha)


def detail_cache_key(pr: PullRequest) -> Key:
    return ("detail", pr.owner, pr.repo, pr.number)


def _short_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class RefreshManager:
    """Schedules the bootstrap, PR list, rollup and detail tiers on one store.

    Every tier is re-evaluated on a periodic tick and on demand. A tier decides
    from its cache entry whether to reuse or refetch; user actions invalidate
    keys and request an immediate tick.
    """

    def __init__(
        self,
        client: DataProvider,
        store: QueryStore | None = None,
        *,
        config_loader: Callable[[], AppConfig] = load_config,
        tick_seconds: float = TICK_SECONDS,
        rerun_reconcile_seconds: float = RERUN_RECONCILE_SECONDS,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize the manager.

        Args:
            client: Data provider used by every tier.
            store: Cache store; a new one is created when omitted.
            config_loader: Called once during bootstrap for watched repos.
            tick_seconds: Period of the scheduler tick.
            rerun_reconcile_seconds: Delay before the detail refetch that
                follows a rerun request.
            retry_delay: Base back-off between retried fetches.
        """
        self._client = client
        self.store = store or QueryStore()
        self._config_loader = config_loader
        self._tick_seconds = tick_seconds
        self._rerun_reconcile_seconds = rerun_reconcile_seconds
        self._retry_delay = retry_delay
        self._bootstrap_policy = replace(BOOTSTRAP_POLICY, retry_delay=retry_delay)
        self._rollup_policy = replace(ROLLUP_POLICY, retry_delay=retry_delay)
        self._detail_policy = replace(DETAIL_POLICY, retry_delay=retry_delay)

        self.configured = False
        self.viewer = ""
        self.repos: list[str] = []
        self.refresh_seconds = DEFAULT_REFRESH_SECONDS
        self.polling_enabled = True
        self._selected_key: str | None = None
        self._errors: dict[str, str] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._reconciles: set[asyncio.Task[None]] = set()
        self._loop_task: asyncio.Task[None] | None = None
        self._listeners: list[Callable[[], None]] = []
        self.store.subscribe(self._notify)

    # ---------------- Observers ----------------

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # ---------------- Derived state ----------------

    def prs_key(self) -> Key:
        return ("prs", tuple(self.repos), self.viewer)

    @property
    def prs(self) -> list[PullRequest]:
        """The last successful list result for the current repos and viewer."""
        return list(self.store.data(self.prs_key(), []))

    @property
    def selected_key(self) -> str | None:
        return self._selected_key

    @property
    def selected_pr(self) -> PullRequest | None:
        if self._selected_key is None:
            return None
        return next((pr for pr in self.prs if pr_key(pr) == self._selected_key), None)

    @property
    def detail(self) -> DetailData | None:
        pr = self.selected_pr
        return self.store.data(detail_cache_key(pr)) if pr is not None else None

    @property
    def last_refresh(self) -> float | None:
        entry = self.store.get(self.prs_key())
        return entry.updated_at if entry is not None else None

    @property
    def loading_overview(self) -> bool:
        return self.store.is_fetching(("prs",)) or self.store.is_fetching(("rollup",))

    @property
    def loading_detail(self) -> bool:
        pr = self.selected_pr
        return pr is not None and self.store.is_fetching(detail_cache_key(pr))

    @property
    def error_text(self) -> str:
        return "; ".join(self._errors.values())

    def rollups(self) -> dict[str, CheckCategory]:
        """Rollup per listed commit, keyed by `owner/repo@sha`.

        The selected PR shows its detail-derived rollup once the detail tier
        has data for it.
        """
        out: dict[str, CheckCategory] = {}
        for pr in self.prs:
            value = self.store.data(rollup_cache_key(pr))
            if value is not None:
                out[rollup_key(pr)] = value
        selected = self.selected_pr
        detail = self.detail
        if selected is not None and detail is not None:
            out[rollup_key(selected)] = detail.rollup_category
        return out

    def displayed_rollup(self) -> CheckCategory:
        """Rollup shown for the selected PR: detail, then rollup tier, then pending."""
        pr = self.selected_pr
        if pr is None:
            return CheckCategory.PENDING
        detail = self.detail
        if detail is not None:
            return detail.rollup_category
        return self.store.data(rollup_cache_key(pr)) or CheckCategory.PENDING

    # ---------------- Scheduling ----------------

    def start(self) -> None:
        """Start the periodic tick on the running event loop."""
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        """Cancel the tick loop and every background fetch."""
        tasks = [t for t in (self._loop_task, *self._tasks, *self._reconciles) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._loop_task = None

    async def _run_loop(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._tick_seconds)

    def request_tick(self) -> list[asyncio.Task[Any]]:
        """Evaluate all tiers now if an event loop is running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return []
        return self.tick()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _due(self, key: Key, policy: TierPolicy, revalidate: bool = False) -> bool:
        if self.store.is_fetching(key):
            return False
        return decide(policy, self.store.get(key), self.store.now(), revalidate) == "refetch"

    def tick(self) -> list[asyncio.Task[Any]]:
        """Evaluate every tier once and start the fetches that are due.

        Returns:
            The background tasks started by this tick.
        """
        if not self.configured:
            if self._due(BOOTSTRAP_KEY, self._bootstrap_policy):
                return [self._spawn(self._run_bootstrap())]
            return []

        started: list[asyncio.Task[Any]] = []
        key = self.prs_key()
        if self._list_enabled() and self._due(key, list_policy(self.refresh_seconds)):
            started.append(self._spawn(self._run_list(key)))
        started.extend(self._sync_rollups(revalidate=False))
        started.extend(self._sync_detail())
        return started

    def _list_enabled(self) -> bool:
        return self.polling_enabled and bool(self.viewer) and bool(self.repos)

    def _sync_rollups(self, revalidate: bool) -> list[asyncio.Task[Any]]:
        """Keep exactly one rollup query per listed commit and fetch due ones."""
        wanted: list[Key] = []
        for pr in self.prs:
            key = rollup_cache_key(pr)
            if key not in wanted:
                wanted.append(key)
        for key in self.store.keys(("rollup",)):
            if key not in wanted:
                self.store.remove(key)
        return [
            self._spawn(self._run_rollup(key)) for key in wanted if self._due(key, self._rollup_policy, revalidate)
        ]

    def _sync_detail(self) -> list[asyncio.Task[Any]]:
        pr = self.selected_pr
        if pr is None:
            return []
        key = detail_cache_key(pr)
        if self._due(key, self._detail_policy):
            return [self._spawn(self._run_detail(key))]
        return []

    # ---------------- Tier runners ----------------

    def _record_error(self, tier: str, exc: BaseException) -> None:
        self._errors[tier] = _short_error(exc)
        self._notify()

    def _clear_error(self, tier: str) -> None:
        if self._errors.pop(tier, None) is not None:
            self._notify()

    async def _run_bootstrap(self) -> None:
        async def fetcher() -> Bootstrap:
            viewer, cfg = await asyncio.gather(self._client.get_viewer(), asyncio.to_thread(self._config_loader))
            refresh = cfg.refresh_seconds if cfg.refresh_seconds > 0 else DEFAULT_REFRESH_SECONDS
            return Bootstrap(viewer=viewer, repos=list(cfg.repos), refresh_seconds=refresh)

        try:
            boot = await self.store.fetch(BOOTSTRAP_KEY, fetcher, self._bootstrap_policy)
        except Exception as e:
            self._record_error("bootstrap", e)
            return
        self._clear_error("bootstrap")
        if self.configured:
            return
        self.configured = True
        self.viewer = boot.viewer
        self.repos = list(boot.repos)
        self.refresh_seconds = boot.refresh_seconds
        logger.info(f"Bootstrapped as {boot.viewer} watching {len(boot.repos)} repos")
        self._notify()
        self.request_tick()

    async def _run_list(self, key: Key) -> None:
        _, repos, viewer = key
        try:
            await self.store.fetch(
                key,
                lambda: self._client.list_authored_prs(list(repos), viewer),
                list_policy(self.refresh_seconds),
            )
        except Exception as e:
            self._record_error("prs", e)
            return
        self._clear_error("prs")
        if key != self.prs_key():
            logger.debug(f"Ignoring list result for outdated key {key!r}")
            return
        self._sync_rollups(revalidate=True)

    async def _run_rollup(self, key: Key) -> None:
        _, owner, repo, sha = key

        async def fetcher() -> CheckCategory:
            checks, runs = await asyncio.gather(
                self._client.get_checks_for_sha(owner, repo, sha),
                self._client.get_workflow_runs_for_sha(owner, repo, sha),
            )
            return rollup(checks, runs)

        try:
            await self.store.fetch(key, fetcher, self._rollup_policy)
        except Exception as e:
            self._record_error("rollup", e)
            return
        self._clear_error("rollup")

    async def _run_detail(self, key: Key) -> None:
        _, owner, repo, number = key

        async def fetcher() -> DetailData:
            checks, runs, meta = await asyncio.gather(
                self._client.get_pr_checks(owner, repo, number),
                self._client.get_pr_workflow_runs(owner, repo, number),
                self._client.get_pr_detail_meta(owner, repo, number),
            )
            marked = mark_required(checks, meta.required_check_names)
            return DetailData(
                checks=marked,
                runs=list(runs),
                review_decision=meta.review_decision,
                rollup_category=rollup(marked, runs),
            )

        try:
            detail = await self.store.fetch(key, fetcher, self._detail_policy)
        except Exception as e:
            self._record_error("detail", e)
            return
        self._clear_error("detail")
        pr = self.selected_pr
        if pr is None or detail_cache_key(pr) != key:
            logger.debug(f"Dropping detail for {key!r}; selection changed")
            return
        # Detail carries required markers the periodic poll lacks, so it wins.
        self.store.set_data(rollup_cache_key(pr), detail.rollup_category)

    # ---------------- Commands ----------------

    def select(self, key: str | None) -> None:
        """Make `key` the selected PR and force a fresh detail fetch.

        Re-selecting the same PR still refetches.
        """
        if key != self._selected_key:
            for old in self.store.keys(("detail",)):
                self.store.remove(old)
        self._selected_key = key
        pr = self.selected_pr
        if pr is not None:
            self.store.invalidate(detail_cache_key(pr))
        self._notify()
        self.request_tick()

    def update_repos(self, repos: list[str], refresh_seconds: int | None = None) -> None:
        """Switch the watched repositories; the selection no longer applies."""
        self.repos = list(repos)
        if refresh_seconds is not None and refresh_seconds > 0:
            self.refresh_seconds = refresh_seconds
        self._selected_key = None
        current = self.prs_key()
        for old in self.store.keys(("prs",)):
            if old != current:
                self.store.remove(old)
        for old in self.store.keys(("detail",)):
            self.store.remove(old)
        self._notify()
        self.request_tick()

    def set_polling_enabled(self, enabled: bool) -> None:
        """Suspend or resume list polling (suspended while editing repos)."""
        if self.polling_enabled == enabled:
            return
        self.polling_enabled = enabled
        self._notify()
        if enabled:
            self.request_tick()

    def refresh_now(self) -> None:
        """Invalidate the list and rollup tiers, and the detail tier if a PR is selected."""
        if not self.configured:
            self.store.invalidate(BOOTSTRAP_KEY)
        self.store.invalidate(("prs",))
        self.store.invalidate(("rollup",))
        if self.selected_pr is not None:
            self.store.invalidate(("detail",))
        self.request_tick()

    async def rerun_failed(self) -> str:
        """Request reruns of the selected PR's failed workflow runs.

        On success the detail entry is patched right away (runs become
        pending/"requested", rollup becomes running), the rollup and list
        tiers are invalidated, and the detail tier is refetched once more
        after a short delay.

        Returns:
            An informational message for the status line.

        Raises:
            ProviderError: If the rerun request fails; the cache is untouched.
        """
        pr = self.selected_pr
        if pr is None:
            return "Select a PR to rerun failed actions"
        key = detail_cache_key(pr)
        detail: DetailData | None = self.store.data(key)
        failed_ids = [run.id for run in (detail.runs if detail else []) if run.category == CheckCategory.FAILED]
        if not failed_ids:
            return "No failed workflow runs to rerun"

        failed = set(failed_ids)

        def patch(current: DetailData) -> DetailData:
            runs = [
                replace(run, status="requested", conclusion="", category=CheckCategory.PENDING)
                if run.id in failed
                else run
                for run in current.runs
            ]
            return replace(current, runs=runs, rollup_category=CheckCategory.RUNNING)

        requested, reconcile_task = await mutate_then_reconcile(
            self.store,
            lambda: self._client.rerun_failed_workflow_runs(pr.owner, pr.repo, failed_ids),
            patches=[(key, patch)],
            invalidate=[("rollup",), ("prs",)],
            reconcile=[key],
            reconcile_delay=self._rerun_reconcile_seconds,
            on_reconcile=self.request_tick,
        )
        if reconcile_task is not None:
            self._reconciles.add(reconcile_task)
            reconcile_task.add_done_callback(self._reconciles.discard)
        self.request_tick()
        suffix = "" if requested == 1 else "s"
        return f"Requested rerun for {requested} failed workflow run{suffix}"

    async def open_selected(self) -> str | None:
        """Open the selected PR in the browser.

        Returns:
            An informational message when nothing is selected, else None.

        Raises:
            ProviderError: If the browser could not be opened.
        """
        pr = self.selected_pr
        if pr is None:
            return "Select a PR to open it in the browser"
        await self._client.open_pr_in_browser(pr.owner, pr.repo, pr.number)
        return None
