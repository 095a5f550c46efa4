"""Tests for har_explorer/timeline.py"""

import math

import pytest

from har_explorer.timeline import (
    bar_width,
    format_elapsed,
    phase_widths,
    project_timeline,
    stagger_offset,
    time_scale,
)
from tests.helpers import entry


def at(ms, duration, **kwargs):
    """Entry starting ms milliseconds after 2024-01-01T00:00:00Z."""
    seconds, millis = divmod(int(ms), 1000)
    started = f"2024-01-01T00:00:{seconds:02d}.{millis:03d}Z"
    return entry(started=started, time=duration, **kwargs)


class TestBarWidth:
    def test_narrow_bar_is_rescaled_to_minimum(self):
        # 80 * 25 / 5000 = 0.4 columns; rescaled against a 5000ms max -> 0, clamped to 2
        assert bar_width(25.0, 5000.0, 5000.0, 80) == 2

    def test_narrow_slow_bar_gets_three_columns(self):
        assert bar_width(150.0, 100000.0, 100000.0, 80) == 3

    def test_rescaled_against_max_duration(self):
        # 80 * 50 / 50000 < 5, so 80 * 0.8 * 50 / 200 = 16
        assert bar_width(50.0, 1000.0 * 50, 200.0, 80) == 16

    def test_primary_width(self):
        assert bar_width(2500.0, 5000.0, 2500.0, 80) == 40

    def test_short_durations_keep_primary(self):
        assert bar_width(10.0, 5000.0, 5000.0, 80) == 1

    def test_zero_window_uses_durations(self):
        assert bar_width(50.0, 0.0, 200.0, 80) == 20
        assert bar_width(1.0, 0.0, 1000.0, 80) == 1


class TestStagger:
    def test_steps_by_two(self):
        assert [stagger_offset(row, 80) for row in range(4)] == [0, 2, 4, 6]

    def test_wraps_past_a_third_of_the_chart(self):
        assert stagger_offset(13, 80) == 26
        assert stagger_offset(14, 80) == 2
        assert all(stagger_offset(row, 80) <= 80 // 3 for row in range(200))

    def test_tiny_chart(self):
        assert stagger_offset(5, 4) == 0


class TestTimeScale:
    def test_eleven_log_ticks(self):
        ticks = time_scale(999.0, 100)
        assert len(ticks) == 11
        assert [t.column for t in ticks] == list(range(0, 101, 10))
        assert ticks[0].elapsed_ms == 0
        assert ticks[-1].elapsed_ms == pytest.approx(999.0)
        assert ticks[5].elapsed_ms == pytest.approx(math.pow(10, 0.5 * math.log10(1000)) - 1)

    def test_labels(self):
        assert format_elapsed(250.4) == "250"
        assert format_elapsed(12345.0) == "12.3s"


class TestProjectTimeline:
    def test_medium_window_uses_real_time(self):
        entries = [at(0, 1000), at(2500, 2500), at(1000, 500)]
        projection = project_timeline(entries, [0, 1, 2], 80)

        assert projection.window_length_ms == pytest.approx(5000)
        assert [bar.position for bar in projection.bars] == [0, 2, 1]
        offsets = {bar.position: bar.offset for bar in projection.bars}
        assert offsets == {0: 0, 1: 40, 2: 16}
        assert projection.bar_for(1).width == 40

    def test_small_window_puts_bars_at_zero(self):
        entries = [at(0, 30), at(40, 50)]
        projection = project_timeline(entries, [0, 1], 80)
        assert projection.window_length_ms == pytest.approx(90)
        assert [bar.offset for bar in projection.bars] == [0, 0]

    def test_large_window_staggers(self):
        entries = [at(0, 100), at(5000, 100), at(20000, 100)]
        projection = project_timeline(entries, [2, 1, 0], 80)
        assert [bar.position for bar in projection.bars] == [0, 1, 2]
        assert [bar.offset for bar in projection.bars] == [0, 2, 4]

    def test_zero_duration_entries_are_dropped(self):
        entries = [at(0, 0), at(10, 20)]
        projection = project_timeline(entries, [0, 1], 80)
        assert [bar.position for bar in projection.bars] == [1]

    def test_unparseable_start_is_rendered_last(self):
        entries = [entry(started="garbage", time=500), at(0, 1000), at(1000, 1000)]
        projection = project_timeline(entries, [0, 1, 2], 80)

        assert projection.window_length_ms == pytest.approx(2000)
        assert [bar.position for bar in projection.bars] == [1, 2, 0]
        fallback = projection.bar_for(0)
        assert not fallback.start_known
        assert fallback.offset == 0

    def test_no_parseable_start_scales_by_duration(self):
        entries = [entry(started="", time=100), entry(started="", time=50)]
        projection = project_timeline(entries, [0, 1], 80)
        assert projection.window_start is None
        assert projection.window_length_ms == 0
        assert [bar.width for bar in projection.bars] == [80, 40]

    def test_empty(self):
        projection = project_timeline([], [], 80)
        assert projection.bars == []
        assert len(projection.ticks) == 11

    def test_pure(self):
        entries = [at(0, 1000), at(2500, 2500)]
        assert project_timeline(entries, [0, 1], 60) == project_timeline(entries, [0, 1], 60)

    def test_rejects_bad_width(self):
        with pytest.raises(ValueError):
            project_timeline([], [], 0)


class TestPhaseWidths:
    def test_split(self):
        item = entry(time=100.0, timings={"blocked": 10, "dns": -1, "connect": 0, "ssl": 0,
                                          "send": 0.5, "wait": 60, "receive": 29.5})
        assert phase_widths(item, 20) == [("blocked", 2), ("send", 1), ("wait", 12), ("receive", 5)]

    def test_never_exceeds_width(self):
        item = entry(time=10.0, timings={"blocked": 5, "dns": 5, "connect": 5, "ssl": 5,
                                         "send": 5, "wait": 5, "receive": 5})
        assert sum(columns for _, columns in phase_widths(item, 3)) == 3

    def test_zero_time(self):
        assert phase_widths(entry(time=0.0), 10) == []
