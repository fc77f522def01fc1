"""
Tide level estimation between high and low water.

Given one day's tide events, estimates the water level at any time of day
with raised-cosine interpolation between the bracketing events:

    level = prev + (next - prev) * (1 - cos(progress * pi)) / 2

The event list is treated as cyclic across midnight, so a time before the
first event is bracketed by the last event and the first one.

All functions are pure. The caller passes "now" explicitly; nothing here
reads a clock. Fewer than two events means the level is not computable and
None is returned.
"""
import math
from dataclasses import dataclass
from datetime import time
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .bulletin import TideEvent, TideKind

MINUTES_PER_DAY = 24 * 60
SECONDS_PER_DAY = MINUTES_PER_DAY * 60


@dataclass(frozen=True)
class Countdown:
    """Whole hours and minutes until a clock time."""
    hours: int
    minutes: int

    @property
    def total_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    def __str__(self) -> str:
        return f"{self.hours}時間{self.minutes}分"


@dataclass(frozen=True)
class TideSample:
    """Estimated tide state at a query instant."""
    level_cm: float
    is_rising: bool
    next_event: TideEvent
    time_until_next: Countdown

    @property
    def trend(self) -> str:
        return "rising" if self.is_rising else "falling"

    @property
    def rounded_level_cm(self) -> int:
        # Half-up, as shown on the dashboard
        return int(math.floor(self.level_cm + 0.5))

    def to_dict(self) -> Dict:
        return {
            "level_cm": self.rounded_level_cm,
            "is_rising": self.is_rising,
            "trend": self.trend,
            "next_tide": self.next_event.to_dict(),
            "time_until_next": {
                "hours": self.time_until_next.hours,
                "minutes": self.time_until_next.minutes,
                "text": str(self.time_until_next),
            },
        }


def sort_events(events: Sequence[TideEvent]) -> List[TideEvent]:
    """Order by time of day; events sharing a minute keep their input order."""
    return sorted(events, key=lambda e: e.minutes)


def _bracket(ordered: List[TideEvent], minutes: float) -> Tuple[TideEvent, TideEvent]:
    """
    Find (prev, next) around a minute of the day in a time-sorted list.

    prev is the last event at or before ``minutes``; when the query precedes
    every event, prev wraps to the last event of the day.
    """
    prev_event = ordered[-1]
    next_event = ordered[0]
    for i, event in enumerate(ordered):
        if event.minutes <= minutes:
            prev_event = event
            next_event = ordered[(i + 1) % len(ordered)]
    return prev_event, next_event


def _raised_cosine(prev_event: TideEvent, next_event: TideEvent, minutes: float) -> float:
    total = next_event.minutes - prev_event.minutes
    if total < 0:
        total += MINUTES_PER_DAY

    elapsed = minutes - prev_event.minutes
    if elapsed < 0:
        elapsed += MINUTES_PER_DAY

    # Events on the same minute: hold the earlier level
    if total == 0:
        return float(prev_event.level_cm)

    progress = elapsed / total
    level_diff = next_event.level_cm - prev_event.level_cm
    return prev_event.level_cm + level_diff * (1 - math.cos(progress * math.pi)) / 2


def interpolate_level(events: Sequence[TideEvent], minutes: float) -> Optional[float]:
    """
    Estimate the tide level at a time of day.

    Args:
        events: One day's tide events, any order
        minutes: Minutes since midnight (0 <= minutes < 1440)

    Returns:
        Level in cm, or None with fewer than two events
    """
    if len(events) < 2:
        return None
    ordered = sort_events(events)
    prev_event, next_event = _bracket(ordered, minutes)
    return _raised_cosine(prev_event, next_event, minutes)


def time_until(target: time, now: time) -> Countdown:
    """
    Count forward from ``now`` to the next occurrence of ``target``.

    Wraps past midnight when the target has already passed today. Seconds on
    ``now`` are honoured, so a target 30 seconds away reads 0h 0m.
    """
    target_seconds = target.hour * 3600 + target.minute * 60
    now_seconds = now.hour * 3600 + now.minute * 60 + now.second
    diff = target_seconds - now_seconds
    if diff < 0:
        diff += SECONDS_PER_DAY
    return Countdown(hours=diff // 3600, minutes=(diff % 3600) // 60)


def current_state(events: Sequence[TideEvent], now: time) -> Optional[TideSample]:
    """
    Describe the tide at ``now``: level, direction and the next extreme.

    Args:
        events: One day's tide events, any order
        now: Wall-clock time of the query (a ``datetime`` works too)

    Returns:
        TideSample, or None with fewer than two events
    """
    if len(events) < 2:
        return None

    minutes = now.hour * 60 + now.minute
    ordered = sort_events(events)
    prev_event, next_event = _bracket(ordered, minutes)

    return TideSample(
        level_cm=_raised_cosine(prev_event, next_event, minutes),
        is_rising=next_event.kind == TideKind.HIGH,
        next_event=next_event,
        time_until_next=time_until(next_event.time, now),
    )


def tide_curve(events: Sequence[TideEvent], interval_minutes: int = 30) -> Optional[List[Dict]]:
    """
    Sample the interpolated level across the day for charting.

    Samples run from 00:00 in steps of ``interval_minutes`` up to but not
    including 24:00. Uses the same bracketing and raised-cosine blend as
    ``interpolate_level``, vectorised over all sample times.

    Args:
        events: One day's tide events, any order
        interval_minutes: Step between samples; must divide a day evenly

    Returns:
        List of {"time": "HH:MM", "minutes": int, "level_cm": float}, or None
        with fewer than two events
    """
    if interval_minutes <= 0 or MINUTES_PER_DAY % interval_minutes != 0:
        raise ValueError("interval_minutes must be a positive divisor of 1440")
    if len(events) < 2:
        return None

    ordered = sort_events(events)
    event_minutes = np.array([e.minutes for e in ordered], dtype=float)
    event_levels = np.array([e.level_cm for e in ordered], dtype=float)
    n = len(ordered)

    sample_minutes = np.arange(0, MINUTES_PER_DAY, interval_minutes, dtype=float)

    # Last event at or before each sample, wrapping to the final event
    prev_idx = np.searchsorted(event_minutes, sample_minutes, side='right') - 1
    prev_idx = np.where(prev_idx < 0, n - 1, prev_idx)
    next_idx = (prev_idx + 1) % n

    total = np.mod(event_minutes[next_idx] - event_minutes[prev_idx], MINUTES_PER_DAY)
    elapsed = np.mod(sample_minutes - event_minutes[prev_idx], MINUTES_PER_DAY)

    safe_total = np.where(total == 0, 1.0, total)
    progress = np.where(total == 0, 0.0, elapsed / safe_total)

    level_diff = event_levels[next_idx] - event_levels[prev_idx]
    levels = event_levels[prev_idx] + level_diff * (1 - np.cos(progress * np.pi)) / 2

    return [
        {
            "time": f"{int(m) // 60:02d}:{int(m) % 60:02d}",
            "minutes": int(m),
            "level_cm": round(float(level), 1),
        }
        for m, level in zip(sample_minutes, levels)
    ]


def next_event_today(events: Sequence[TideEvent], now: time) -> Optional[TideEvent]:
    """First event strictly after ``now`` on the same day, without wrapping."""
    minutes = now.hour * 60 + now.minute
    for event in sort_events(events):
        if event.minutes > minutes:
            return event
    return None


def split_by_kind(events: Sequence[TideEvent]) -> Tuple[List[TideEvent], List[TideEvent]]:
    """Return (highs, lows), each in time order."""
    ordered = sort_events(events)
    highs = [e for e in ordered if e.kind == TideKind.HIGH]
    lows = [e for e in ordered if e.kind == TideKind.LOW]
    return highs, lows
