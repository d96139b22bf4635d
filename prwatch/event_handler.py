from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from textual import events
from textual.widgets import Input

from .config import AppConfig, save_config
from .mouse import MouseEvent, apply_mouse, classify_button, sgr_button_code
from .navigation import (
    Focus,
    NavigationState,
    confirm,
    move_detail,
    move_overview,
    reset_for_repos,
    toggle_focus,
)
from .utils.repo_input import RepoInputError, parse_repo_input

if TYPE_CHECKING:
    from .tui import PRWatchApp

logger = logging.getLogger(__name__)


class EventHandler:
    """Handles keyboard, mouse and prompt events for the PRWatchApp."""

    def __init__(self, app: PRWatchApp) -> None:
        """Initialize with reference to the main app."""
        self.app = app

    def _set_navigation(self, state: NavigationState) -> None:
        if state is self.app.navigation:
            return
        self.app.navigation = state
        self.app.refresh_view()

    def _detail_count(self) -> int:
        detail = self.app.manager.detail
        return len(detail.checks) + len(detail.runs) if detail is not None else 0

    # ---------------- Keyboard ----------------

    def toggle_focus(self) -> None:
        if self.app.repo_input_open:
            return
        self._set_navigation(toggle_focus(self.app.navigation))

    def move_cursor(self, delta: int) -> None:
        """Move the cursor of the focused pane by `delta` rows."""
        if self.app.repo_input_open:
            return
        nav = self.app.navigation
        if nav.focus is Focus.OVERVIEW:
            self._set_navigation(move_overview(nav, delta, len(self.app.manager.prs)))
        else:
            self._set_navigation(move_detail(nav, delta, self._detail_count()))

    def confirm_selection(self) -> None:
        """Select the highlighted PR and load its details.

        Confirming the PR that is already selected refetches its details.
        """
        if self.app.repo_input_open or self.app.navigation.focus is not Focus.OVERVIEW:
            return
        prs = self.app.manager.prs
        if not prs:
            return
        state = confirm(self.app.navigation, prs)
        self._set_navigation(state)
        self.app.manager.select(state.selected_key)

    def refresh_now(self) -> None:
        self.app.manager.refresh_now()

    def open_selected(self) -> None:
        self.app.run_command(self.app.manager.open_selected())

    def rerun_failed(self) -> None:
        self.app.run_command(self.app.manager.rerun_failed())

    def toggle_repo_editor(self) -> None:
        if self.app.repo_input_open:
            self.app.close_repo_editor()
        else:
            self.app.open_repo_editor()

    def on_key(self, event: events.Key) -> None:
        """Escape closes the repo editor without saving."""
        if self.app.repo_input_open and event.key == "escape":
            self.app.close_repo_editor()
            event.stop()

    # ---------------- Repo editor ----------------

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if not self.app.repo_input_open:
            return
        self.save_repos(event.value)

    def save_repos(self, text: str) -> None:
        """Parse, persist and apply a new set of watched repositories.

        Invalid input is reported and leaves the editor open.

        Args:
            text: Comma or whitespace separated repository identifiers.
        """
        try:
            repos = parse_repo_input(text)
        except RepoInputError as e:
            self.app.show_error(str(e))
            return
        cfg = AppConfig(repos=repos, refresh_seconds=self.app.manager.refresh_seconds, auth_token=self.app.cfg.auth_token)
        try:
            save_config(cfg)
        except OSError as e:
            logger.error(f"Saving config failed: {e}")
            self.app.show_error(f"Could not save config: {e}")
            return
        self.app.cfg = cfg
        self.app.navigation = reset_for_repos(self.app.navigation)
        self.app.close_repo_editor()
        self.app.manager.update_repos(repos, cfg.refresh_seconds)
        self.app.show_info("Saved watched repositories")

    # ---------------- Mouse ----------------

    def dispatch_mouse(self, decoded: Sequence[MouseEvent]) -> None:
        """Apply one batch of decoded mouse events, wheel events throttled."""
        if self.app.repo_input_open:
            return
        for event in self.app.mouse_throttle.filter(decoded):
            outcome = apply_mouse(event, self.app.screen_layout(), self.app.navigation, self.app.manager.prs)
            if outcome is None:
                continue
            self._set_navigation(outcome.state)
            if outcome.selected:
                self.app.manager.select(outcome.state.selected_key)

    def _dispatch_textual(self, event: events.MouseEvent, terminator: str, wheel_down: bool | None = None) -> None:
        """Re-encode a Textual mouse event and dispatch it like raw SGR input."""
        code = sgr_button_code(
            event.button,
            wheel_down=wheel_down,
            shift=event.shift,
            meta=event.meta,
            ctrl=event.ctrl,
        )
        kind = classify_button(code, terminator)
        if kind is None:
            return
        # Textual screen offsets are 0-based; terminal cells are 1-based.
        self.dispatch_mouse([MouseEvent(kind, int(event.screen_x) + 1, int(event.screen_y) + 1)])

    def on_mouse_up(self, event: events.MouseUp) -> None:
        self._dispatch_textual(event, "m")

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        self._dispatch_textual(event, "M", wheel_down=False)

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        self._dispatch_textual(event, "M", wheel_down=True)
