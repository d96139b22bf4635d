from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import ClassVar

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Input, Rule, Static

from .config import AppConfig, load_config
from .event_handler import EventHandler
from .github import GitHubClient, ProviderError
from .layout import layout_overview
from .models import PullRequest
from .mouse import ScreenLayout, WheelThrottle
from .navigation import NavigationState, reconcile
from .refresh import DataProvider, RefreshManager
from .ui import DetailPanel, OverviewList, PromptManager, StatusBar
from .ui.detail import DETAIL_LIST_OFFSET
from .view import ViewModel, build_view_model

logger = logging.getLogger(__name__)


class PRWatchApp(App):
    """Textual dashboard of CI and review health for the viewer's open PRs."""

    CSS = """
    Screen { overflow: hidden; }
    #status { padding: 1 1 0 1; height: auto; }
    #overview { padding: 1 1 0 1; height: auto; min-height: 6; }
    #detail { padding: 0 1; height: auto; }
    #splash { width: 100%; height: 1fr; content-align: center middle; }
    #repo_prompt { padding: 1 2; height: auto; }
    """

    BINDINGS: ClassVar[list[Binding]] = [
        Binding("q", "quit", "Quit"),
        Binding("s", "toggle_repos", "Repos"),
        Binding("r", "refresh", "Refresh"),
        Binding("o", "open_pr", "Open PR"),
        Binding("f", "rerun_failed", "Rerun failed"),
        Binding("tab", "toggle_focus", "Focus", priority=True),
        Binding("up,k", "cursor(-1)", "Up", show=False),
        Binding("down,j", "cursor(1)", "Down", show=False),
        Binding("enter", "confirm", "Select", show=False),
    ]

    def __init__(self, cfg: AppConfig | None = None, client: DataProvider | None = None) -> None:
        """Initialize application state and widgets.

        Args:
            cfg: Configuration to use instead of the one on disk.
            client: Data provider to use instead of a `GitHubClient`.
        """
        super().__init__()
        self.info_text = ""
        self.error_text = ""
        if cfg is None:
            try:
                cfg = load_config()
            except (OSError, ValueError) as e:
                # Start with defaults; saving repos rewrites the file.
                logger.error(f"Loading config failed: {e}")
                self.error_text = f"Could not load config: {e}"
                cfg = AppConfig()
        self.cfg: AppConfig = cfg
        provider = client or GitHubClient(self.cfg.resolved_token())
        self.manager = RefreshManager(provider, config_loader=lambda: self.cfg)
        self.navigation = NavigationState()
        self.repo_input_open = False
        self.mouse_throttle = WheelThrottle()
        self._last_prs: list[PullRequest] = []
        self._seen_config = False
        self._ready = False
        self._commands: set[asyncio.Task[None]] = set()
        self._status = StatusBar()
        self._overview = OverviewList()
        self._detail = DetailPanel()
        self._rule = Rule()
        self._splash = Static("Starting…", id="splash")
        self._prompt_manager = PromptManager(self)
        self._event_handler = EventHandler(self)
        self.manager.subscribe(self._on_manager_changed)

    def compose(self) -> ComposeResult:
        yield self._status
        yield self._splash
        yield self._overview
        yield self._rule
        yield self._detail
        yield Footer()

    def on_mount(self) -> None:
        self._ready = True
        self.manager.start()
        self.set_interval(1.0, self.refresh_view)
        self.refresh_view()

    async def on_unmount(self) -> None:
        await self.manager.stop()

    # ---------------- State ----------------

    def _on_manager_changed(self) -> None:
        prs = self.manager.prs
        if prs != self._last_prs:
            self._last_prs = prs
            self.navigation = reconcile(self.navigation, prs)
        if self.manager.configured and not self._seen_config:
            self._seen_config = True
            if self.manager.repos:
                self.show_info(f"Loaded {len(self.manager.repos)} watched repos")
            else:
                self.open_repo_editor()
        self.refresh_view()

    def view_model(self) -> ViewModel:
        m = self.manager
        errors = [text for text in (self.error_text, m.error_text) if text]
        return build_view_model(
            viewer=m.viewer,
            repos=m.repos,
            last_refresh=m.last_refresh,
            loading_overview=m.loading_overview,
            loading_detail=m.loading_detail,
            prs=m.prs,
            navigation=self.navigation,
            selected_pr=m.selected_pr,
            detail=m.detail,
            rollups=m.rollups(),
            rollup_category=m.displayed_rollup(),
            info_text=self.info_text,
            error_text="; ".join(errors),
            booting=not m.configured,
            repo_input_open=self.repo_input_open,
        )

    def refresh_view(self) -> None:
        """Repaint every pane from a fresh view model."""
        if not self._ready:
            return
        view = self.view_model()
        splash = view.booting or (view.loading_overview and not view.prs and bool(view.repos))
        self._splash.update(view.error_text if view.booting and view.error_text else "Fetching PRs…")
        self._splash.display = splash and not view.repo_input_open
        for widget in (self._overview, self._rule, self._detail):
            widget.display = not splash and not view.repo_input_open
        self._status.show(view)
        self._overview.show(view)
        self._detail.show(view)

    def screen_layout(self) -> ScreenLayout:
        """Current pane geometry in 1-indexed terminal cells."""
        view = self.view_model()
        ov = self._overview.content_region
        dt = self._detail.content_region
        return ScreenLayout(
            overview_left=ov.x + 1,
            overview_top=ov.y + 1,
            overview_width=ov.width,
            overview_height=ov.height,
            overview_rows=layout_overview(view.prs, ov.width),
            detail_left=dt.x + 1,
            detail_top=dt.y + 1 + DETAIL_LIST_OFFSET,
            detail_width=dt.width,
            detail_count=len(view.detail_rows) if view.selected_pr is not None else 0,
            detail_cursor=view.detail_cursor,
        )

    def show_info(self, message: str) -> None:
        self.info_text = message
        self.error_text = ""
        self.refresh_view()

    def show_error(self, message: str) -> None:
        self.error_text = message
        self.refresh_view()

    def run_command(self, command: Awaitable[str | None]) -> None:
        """Run a user action in the background and report its outcome once."""

        async def runner() -> None:
            try:
                message = await command
            except ProviderError as e:
                logger.error(f"Command failed: {e}")
                self.show_error(str(e))
                return
            if message:
                self.show_info(message)

        task = asyncio.create_task(runner())
        self._commands.add(task)
        task.add_done_callback(self._commands.discard)

    def open_repo_editor(self) -> None:
        if self.repo_input_open:
            return
        self.repo_input_open = True
        self.manager.set_polling_enabled(False)
        self._prompt_manager.open_repo_prompt(", ".join(self.manager.repos))
        self.refresh_view()

    def close_repo_editor(self) -> None:
        if not self.repo_input_open:
            return
        self.repo_input_open = False
        self._prompt_manager.close_repo_prompt()
        self.manager.set_polling_enabled(True)
        self.refresh_view()

    # ---------------- Actions ----------------

    def action_toggle_repos(self) -> None:
        self._event_handler.toggle_repo_editor()

    def action_refresh(self) -> None:
        self._event_handler.refresh_now()

    def action_open_pr(self) -> None:
        self._event_handler.open_selected()

    def action_rerun_failed(self) -> None:
        self._event_handler.rerun_failed()

    def action_toggle_focus(self) -> None:
        self._event_handler.toggle_focus()

    def action_cursor(self, delta: int) -> None:
        self._event_handler.move_cursor(delta)

    def action_confirm(self) -> None:
        self._event_handler.confirm_selection()

    # ---------------- Events ----------------

    def on_key(self, event: events.Key) -> None:
        self._event_handler.on_key(event)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._event_handler.on_input_submitted(event)

    def on_mouse_up(self, event: events.MouseUp) -> None:
        self._event_handler.on_mouse_up(event)

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        self._event_handler.on_mouse_scroll_up(event)

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        self._event_handler.on_mouse_scroll_down(event)
