"""
Interval/ease scheduling.

A modified SM-2: ease moves in steps of 20 (floor 130), and instead of a
random fuzz the new interval is load balanced inside a small window so the
number of items due per day stays flat.

This is a pure computation module with no I/O.
"""

import math
from typing import Protocol

from cadence.domain.constants import DAY_MS, EASE_STEP, LINK_FACTOR_LOG_BASE, MIN_EASE
from cadence.domain.models import LinkStat, ReviewResponse, ScheduleResult


class SchedulingSettings(Protocol):
    easy_bonus: float
    lapses_interval_change: float
    maximum_interval: int


class EaseSettings(Protocol):
    base_ease: int
    max_link_factor: float


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def fuzz_window(interval: int) -> tuple[int, int]:
    """Inclusive [lo, hi] range of day offsets a rounded interval may move to."""
    if interval < 2:
        return 1, 1
    if interval == 2:
        return 2, 3
    if interval < 7:
        fuzz = 1
    elif interval < 30:
        fuzz = max(2, math.floor(interval * 0.15))
    else:
        fuzz = max(4, math.floor(interval * 0.05))
    return interval - fuzz, interval + fuzz


def load_balance(interval: float, due_dates: dict[int, int]) -> int:
    """
    Pick the least loaded day offset in the fuzz window and book it.

    Offsets are scanned in ascending order and a candidate only replaces the
    current choice when its count is strictly lower, so on ties the earliest
    offset seen wins. The chosen offset's count in `due_dates` is incremented.
    """
    lo, hi = fuzz_window(_round_half_up(interval))
    chosen = min(max(_round_half_up(interval), lo), hi)

    for ivl in range(lo, hi + 1):
        if due_dates.get(ivl, 0) < due_dates.get(chosen, 0):
            chosen = ivl

    due_dates[chosen] = due_dates.get(chosen, 0) + 1
    return chosen


def schedule(
    response: ReviewResponse,
    interval: float,
    ease: int,
    delay_before_review: float,
    settings: SchedulingSettings,
    due_dates: dict[int, int] | None = None,
) -> ScheduleResult:
    """
    Compute the next interval and ease after a review.

    Args:
        response: Button pressed. RESET leaves interval and ease as given;
            the caller is expected to clear the item's scheduling state.
        interval: Current interval in days.
        ease: Current centesimal ease (>= 130).
        delay_before_review: Milliseconds elapsed since the item was due.
            Negative values (reviewing early) count as zero.
        settings: Provides easy_bonus, lapses_interval_change, maximum_interval.
        due_dates: Optional day-offset histogram for load balancing. It is
            updated in place with the chosen offset.
    """
    delay_days = max(0, math.floor(delay_before_review / DAY_MS))

    if response == ReviewResponse.EASY:
        ease += EASE_STEP
        interval = ((interval + delay_days) * ease) / 100
        interval *= settings.easy_bonus
    elif response == ReviewResponse.GOOD:
        interval = ((interval + delay_days / 2) * ease) / 100
    elif response == ReviewResponse.HARD:
        ease = max(MIN_EASE, ease - EASE_STEP)
        interval = max(1, (interval + delay_days / 4) * settings.lapses_interval_change)

    if due_dates is not None and response != ReviewResponse.RESET:
        interval = load_balance(interval, due_dates)

    interval = min(interval, settings.maximum_interval)

    return ScheduleResult(interval=math.floor(interval * 10 + 0.5) / 10, ease=ease)


def estimate_initial_ease(
    incoming: list[LinkStat],
    outgoing: dict[str, int],
    ease_by_path: dict[str, int],
    importance: dict[str, float],
    settings: EaseSettings,
) -> int:
    """
    Bootstrap the ease of a never-reviewed note from its linked neighbours.

    Each neighbour that already has an ease contributes it, weighted by its
    importance and the number of links. The more links there are, the more
    the neighbours' ease replaces `base_ease` (capped by max_link_factor).
    """
    link_total = 0.0
    link_pg_total = 0.0
    total_link_count = 0

    neighbours = [(stat.source_path, stat.link_count) for stat in incoming]
    neighbours += list(outgoing.items())

    for path, count in neighbours:
        neighbour_ease = ease_by_path.get(path)
        if not neighbour_ease:
            continue
        rank = importance.get(path, 0.0)
        link_total += count * rank * neighbour_ease
        link_pg_total += rank * count
        total_link_count += count

    link_contribution = settings.max_link_factor * min(
        1.0, math.log(total_link_count + 0.5) / math.log(LINK_FACTOR_LOG_BASE)
    )

    if total_link_count > 0 and link_pg_total > 0:
        neighbour_term = link_total / link_pg_total
    else:
        neighbour_term = settings.base_ease

    return _round_half_up(
        (1.0 - link_contribution) * settings.base_ease + link_contribution * neighbour_term
    )


def text_interval(interval: float, mobile: bool = False) -> str:
    """Human-readable interval: days below a month, then months, then years."""
    m = _round_half_up(interval / 3) / 10
    y = _round_half_up(interval / 36.5) / 10

    if mobile:
        if interval < 30:
            return f"{interval}d"
        if interval < 365:
            return f"{m}m"
        return f"{y}y"

    if interval < 30:
        return "1.0 day" if interval == 1.0 else f"{interval} days"
    if interval < 365:
        return "1.0 month" if m == 1.0 else f"{m} months"
    return "1.0 year" if y == 1.0 else f"{y} years"
