"""
Waterfall projection of a filtered set of entries.

Maps each entry's start time and duration onto a fixed number of chart
columns. The projection is a pure function of the entries, the visible
positions and the chart width.
"""

import logging
import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from .models import HarEntry, TimelineBar, TimelineProjection, TimelineTick
from .timestamps import try_parse_har_datetime

logger = logging.getLogger(__name__)


DEFAULT_CHART_WIDTH = 80

# Window regimes (ms)
SMALL_TIMESPAN_MS = 100
LARGE_TIMESPAN_MS = 10000
STAGGER_STEP = 2

# Bar width rescaling
MIN_BAR_WIDTH_THRESHOLD = 5.0
MIN_DURATION_FOR_SCALING = 20
MIN_BAR_WIDTH_LARGE = 3
MIN_BAR_WIDTH_SMALL = 2
DURATION_SCALING_FACTOR = 0.8

TICK_COUNT = 11

PHASES = ('blocked', 'dns', 'connect', 'ssl', 'send', 'wait', 'receive')


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def stagger_offset(row: int, chart_width: int) -> int:
    """Offset by render order, used when real start times are too far apart."""
    offset = row * STAGGER_STEP
    if offset > chart_width // 3:
        period = chart_width // 6
        offset = (row % period) * STAGGER_STEP if period else 0
    return offset


def bar_width(duration: float, window_ms: float, max_duration: float, chart_width: int) -> int:
    """
    Columns for a bar of the given duration.

    Bars that would be too narrow to see when scaled to the window are
    rescaled against the slowest entry in the set instead.
    """
    if window_ms <= 0:
        if max_duration > 0 and duration > 0:
            return max(int(chart_width * duration / max_duration), 1)
        return 1

    window_based = chart_width * duration / window_ms
    if window_based < MIN_BAR_WIDTH_THRESHOLD and duration > MIN_DURATION_FOR_SCALING and max_duration > 0:
        width = int(chart_width * DURATION_SCALING_FACTOR * duration / max_duration)
        if width < MIN_BAR_WIDTH_LARGE and duration > SMALL_TIMESPAN_MS:
            return MIN_BAR_WIDTH_LARGE
        if width < MIN_BAR_WIDTH_SMALL:
            return MIN_BAR_WIDTH_SMALL
        return width

    width = _round(window_based)
    if width < 1 and duration > 0:
        width = 1
    return width


def format_elapsed(elapsed_ms: float) -> str:
    if elapsed_ms < 1000:
        return f"{elapsed_ms:.0f}"
    return f"{elapsed_ms / 1000:.1f}s"


def time_scale(window_ms: float, chart_width: int) -> List[TimelineTick]:
    """Evenly spaced ticks on a log10 time axis spanning the window."""
    log_max = math.log10(max(window_ms, 0.0) + 1)
    ticks = []
    for k in range(TICK_COUNT):
        progress = k / (TICK_COUNT - 1)
        elapsed = math.pow(10, progress * log_max) - 1
        ticks.append(TimelineTick(
            column=chart_width * k // (TICK_COUNT - 1),
            elapsed_ms=elapsed,
            label=format_elapsed(elapsed),
        ))
    return ticks


def project_timeline(
    entries: Sequence[HarEntry],
    positions: Sequence[int],
    chart_width: int = DEFAULT_CHART_WIDTH,
) -> TimelineProjection:
    """
    Lay out the visible entries as a waterfall.

    Args:
        entries: Entry snapshot
        positions: Visible positions, as returned by the query engine
        chart_width: Columns available for bars

    Returns:
        TimelineProjection with bars in render order (by start time,
        unparseable timestamps last)

    Raises:
        ValueError: If chart_width is less than 1
    """
    if chart_width < 1:
        raise ValueError(f"chart_width must be at least 1, got {chart_width}")

    retained = [p for p in positions if 0 <= p < len(entries) and entries[p].time > 0]

    starts: Dict[int, Optional[datetime]] = {}
    window_start: Optional[datetime] = None
    window_end_ms: Optional[float] = None
    for position in retained:
        entry = entries[position]
        start = try_parse_har_datetime(entry.started_date_time)
        starts[position] = start
        if start is None:
            logger.debug(f"Unparseable startedDateTime at position {position}: {entry.started_date_time!r}")
            continue
        end_ms = start.timestamp() * 1000 + entry.time
        if window_start is None or start < window_start:
            window_start = start
        if window_end_ms is None or end_ms > window_end_ms:
            window_end_ms = end_ms

    window_ms = 0.0
    if window_start is not None:
        window_ms = window_end_ms - window_start.timestamp() * 1000

    max_duration = max((entries[p].time for p in retained), default=0.0)

    def render_key(index: int) -> Tuple:
        start = starts[retained[index]]
        return (0, start) if start is not None else (1,)

    order = sorted(range(len(retained)), key=render_key)

    bars = []
    for row, index in enumerate(order):
        position = retained[index]
        entry = entries[position]
        start = starts[position]

        if window_ms <= SMALL_TIMESPAN_MS:
            offset = 0
        elif window_ms > LARGE_TIMESPAN_MS:
            offset = stagger_offset(row, chart_width)
        elif start is None:
            offset = 0
        else:
            relative = start.timestamp() * 1000 - window_start.timestamp() * 1000
            offset = _round(chart_width * relative / window_ms)

        bars.append(TimelineBar(
            position=position,
            offset=offset,
            width=bar_width(entry.time, window_ms, max_duration, chart_width),
            duration_ms=entry.time,
            start_known=start is not None,
        ))

    return TimelineProjection(
        chart_width=chart_width,
        window_start=window_start,
        window_length_ms=window_ms,
        bars=bars,
        ticks=time_scale(window_ms, chart_width),
    )


def phase_widths(entry: HarEntry, width: int) -> List[Tuple[str, int]]:
    """
    Split a bar into its timing phases.

    Every positive phase gets at least one column and the total never
    exceeds width. Columns left over represent time not covered by the
    recorded phases.
    """
    total = entry.time
    if total <= 0 or width <= 0:
        return []

    result = []
    used = 0
    for phase in PHASES:
        duration = getattr(entry.timings, phase)
        if duration <= 0:
            continue
        columns = max(int(width * duration / total), 1)
        columns = min(columns, width - used)
        if columns > 0:
            result.append((phase, columns))
            used += columns
    return result
