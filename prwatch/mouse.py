"""SGR mouse decoding and hit-testing for the two dashboard panes.

Raw terminal input goes through `MouseDecoder`. Inside the Textual app the
terminal bytes are already decoded, so mouse events are turned back into SGR
button codes with `sgr_button_code` and take the same `classify_button`,
throttle and hit-test path.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .layout import STATUS_PREFIX_WIDTH, TIMESTAMP_WIDTH, OverviewRow, detail_window
from .models import PullRequest
from .navigation import (
    Focus,
    NavigationState,
    confirm,
    move_detail,
    move_overview,
    point_detail,
    point_overview,
    set_focus,
)

logger = logging.getLogger(__name__)

SGR_MOUSE_RE = re.compile(r"\x1b\[<(\d+);(\d+);(\d+)([Mm])")
# A sequence cut off at the end of a read; kept for the next chunk.
_PARTIAL_RE = re.compile(r"\x1b(?:\[(?:<[\d;]*)?)?$")

WHEEL_BIT = 64
WHEEL_MIN_INTERVAL = 0.04
SHIFT_BIT = 4
META_BIT = 8
CTRL_BIT = 16
# Low bits of 3 mean "no button" in the SGR encoding.
NO_BUTTON = 3


class MouseKind(str, Enum):
    LEFT_RELEASE = "left_release"
    WHEEL_UP = "wheel_up"
    WHEEL_DOWN = "wheel_down"

    @property
    def is_wheel(self) -> bool:
        return self is not MouseKind.LEFT_RELEASE


@dataclass(frozen=True)
class MouseEvent:
    """A decoded mouse event at a 1-indexed terminal cell."""

    kind: MouseKind
    column: int
    row: int


def classify_button(code: int, terminator: str) -> MouseKind | None:
    """Map an SGR button code and terminator to an event kind.

    Args:
        code: Numeric button code, modifier bits included.
        terminator: "M" for press/motion, "m" for release.

    Returns:
        The event kind, or None for buttons the dashboard ignores.
    """
    if code & WHEEL_BIT:
        return MouseKind.WHEEL_DOWN if code & 1 else MouseKind.WHEEL_UP
    if code & 3 == 0 and terminator == "m":
        return MouseKind.LEFT_RELEASE
    return None


def sgr_button_code(
    button: int,
    *,
    wheel_down: bool | None = None,
    shift: bool = False,
    meta: bool = False,
    ctrl: bool = False,
) -> int:
    """Rebuild the SGR button code of an already decoded mouse event.

    Args:
        button: 1, 2 or 3 for the left, middle or right button; anything
            else means no button. Ignored for wheel events.
        wheel_down: None for button events, else the wheel direction.
        shift: Shift was held.
        meta: Meta was held.
        ctrl: Control was held.
    """
    if wheel_down is not None:
        code = WHEEL_BIT | (1 if wheel_down else 0)
    else:
        code = button - 1 if button in (1, 2, 3) else NO_BUTTON
    if shift:
        code |= SHIFT_BIT
    if meta:
        code |= META_BIT
    if ctrl:
        code |= CTRL_BIT
    return code


def decode_sgr(data: str) -> list[MouseEvent]:
    """Decode every complete SGR mouse sequence in `data`, in order."""
    events: list[MouseEvent] = []
    for match in SGR_MOUSE_RE.finditer(data):
        kind = classify_button(int(match.group(1)), match.group(4))
        if kind is not None:
            events.append(MouseEvent(kind, int(match.group(2)), int(match.group(3))))
    return events


class WheelThrottle:
    """Accept at most one wheel event per interval and per input batch.

    Releases always pass.
    """

    def __init__(self, interval: float = WHEEL_MIN_INTERVAL, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = interval
        self._clock = clock
        self._last: float | None = None

    def filter(self, events: Sequence[MouseEvent]) -> list[MouseEvent]:
        accepted: list[MouseEvent] = []
        wheel_seen = False
        for event in events:
            if not event.kind.is_wheel:
                accepted.append(event)
                continue
            if wheel_seen:
                continue
            wheel_seen = True
            now = self._clock()
            if self._last is not None and now - self._last < self.interval:
                continue
            self._last = now
            accepted.append(event)
        return accepted


class MouseDecoder:
    """Stateful decoder for a raw terminal input stream."""

    def __init__(self, throttle: WheelThrottle | None = None) -> None:
        self.throttle = throttle or WheelThrottle()
        self._pending = ""

    def feed(self, data: str) -> list[MouseEvent]:
        """Decode one input batch.

        A sequence split across reads is completed by the next call.

        Returns:
            The accepted events of this batch.
        """
        buffer = self._pending + data
        self._pending = ""
        end = 0
        for match in SGR_MOUSE_RE.finditer(buffer):
            end = match.end()
        partial = _PARTIAL_RE.search(buffer, end)
        if partial is not None:
            self._pending = partial.group(0)
            buffer = buffer[: partial.start()]
        return self.throttle.filter(decode_sgr(buffer))


class Region(str, Enum):
    STATUS = "status"
    TITLE = "title"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class ScreenLayout:
    """Where the panes sit on screen, in 1-indexed terminal cells.

    Attributes:
        overview_left: Column of the overview pane's first cell.
        overview_top: Row of the overview pane's first line.
        overview_width: Width of the overview pane.
        overview_height: Visible lines of the overview pane.
        overview_rows: Row placement from `layout.layout_overview`.
        detail_left: Column of the detail list's first cell.
        detail_top: Row of the first visible detail list line.
        detail_width: Width of the detail pane.
        detail_count: Number of rows in the unwindowed detail list.
        detail_cursor: Current detail cursor (the window centres on it).
    """

    overview_left: int = 1
    overview_top: int = 1
    overview_width: int = 0
    overview_height: int = 0
    overview_rows: Sequence[OverviewRow] = field(default_factory=tuple)
    detail_left: int = 1
    detail_top: int = 1
    detail_width: int = 0
    detail_count: int = 0
    detail_cursor: int = 0

    def pane_at(self, column: int, row: int) -> Focus | None:
        if (
            self.overview_left <= column < self.overview_left + self.overview_width
            and self.overview_top <= row < self.overview_top + self.overview_height
        ):
            return Focus.OVERVIEW
        start, end = detail_window(self.detail_cursor, self.detail_count)
        if (
            self.detail_left <= column < self.detail_left + self.detail_width
            and self.detail_top <= row < self.detail_top + (end - start)
        ):
            return Focus.DETAIL
        return None


@dataclass(frozen=True)
class OverviewHit:
    index: int
    region: Region


@dataclass(frozen=True)
class DetailHit:
    index: int


def hit_test(event: MouseEvent, layout: ScreenLayout) -> OverviewHit | DetailHit | None:
    """Map a pointer position to the list entry painted there.

    Only the first line of an overview row has the timestamp column; on
    continuation lines the prefix columns are blank and miss.
    """
    pane = layout.pane_at(event.column, event.row)
    if pane is Focus.OVERVIEW:
        line = event.row - layout.overview_top
        column = event.column - layout.overview_left
        row = next((r for r in layout.overview_rows if r.contains(line)), None)
        if row is None:
            return None
        if line == row.top:
            if column < STATUS_PREFIX_WIDTH:
                return OverviewHit(row.index, Region.STATUS)
            if column >= layout.overview_width - TIMESTAMP_WIDTH:
                return OverviewHit(row.index, Region.TIMESTAMP)
            return OverviewHit(row.index, Region.TITLE)
        if column < STATUS_PREFIX_WIDTH:
            return None
        return OverviewHit(row.index, Region.TITLE)
    if pane is Focus.DETAIL:
        start, _ = detail_window(layout.detail_cursor, layout.detail_count)
        return DetailHit(start + event.row - layout.detail_top)
    return None


@dataclass(frozen=True)
class MouseOutcome:
    """Navigation after a mouse event; `selected` means a PR was confirmed."""

    state: NavigationState
    selected: bool = False


def apply_mouse(
    event: MouseEvent,
    layout: ScreenLayout,
    state: NavigationState,
    prs: Sequence[PullRequest],
) -> MouseOutcome | None:
    """Turn a decoded event into a navigation change.

    A click on a pane without focus only focuses it. A click on the text of
    an overview row in the focused overview moves the cursor there and
    confirms the PR. Wheel events move the cursor of the pane under the
    pointer and focus it.

    Returns:
        The outcome, or None when the event hit nothing.
    """
    if event.kind.is_wheel:
        pane = layout.pane_at(event.column, event.row)
        delta = 1 if event.kind is MouseKind.WHEEL_DOWN else -1
        if pane is Focus.OVERVIEW:
            return MouseOutcome(move_overview(set_focus(state, pane), delta, len(prs)))
        if pane is Focus.DETAIL:
            return MouseOutcome(move_detail(set_focus(state, pane), delta, layout.detail_count))
        return None

    hit = hit_test(event, layout)
    if isinstance(hit, OverviewHit):
        if state.focus is not Focus.OVERVIEW or hit.region is Region.STATUS:
            return MouseOutcome(set_focus(state, Focus.OVERVIEW))
        pointed = point_overview(state, hit.index, len(prs))
        return MouseOutcome(confirm(pointed, prs), selected=bool(prs))
    if isinstance(hit, DetailHit):
        if state.focus is not Focus.DETAIL:
            return MouseOutcome(set_focus(state, Focus.DETAIL))
        return MouseOutcome(point_detail(state, hit.index, layout.detail_count))
    logger.debug(f"Discarding mouse event outside known regions: {event}")
    return None
