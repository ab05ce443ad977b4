"""
Interval Reconciler.

Subtracts busy calendar events from the user's base availability windows.

Everything here works on local wall-clock values. Event timestamps are read
field by field (date part, hour, minute) and never converted through an
instant, so an event written as 23:30 with a -08:00 offset stays on the day
it was written for.
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Union

from app.core.outreach.models import BusyEvent, TimeWindow

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

_STAMP_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ](\d{2}):(\d{2}))?")


def local_day(value: Union[str, date, datetime]) -> date:
    """Wall-clock day of an event boundary."""
    return _split(value)[0]


def minute_of_day(value: Union[str, date, datetime, time]) -> int:
    """Wall-clock minute of day (0-1439). Bare dates are midnight."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    return _split(value)[1]


def _split(value: Union[str, date, datetime]) -> tuple[date, int]:
    if isinstance(value, datetime):
        # tzinfo is ignored
        return value.date(), value.hour * 60 + value.minute
    if isinstance(value, date):
        return value, 0

    match = _STAMP_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Unrecognized event timestamp: {value!r}")

    day = date.fromisoformat(match.group(1))
    if match.group(2) is None:
        return day, 0
    return day, int(match.group(2)) * 60 + int(match.group(3))


def _minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def _all_day_covers(event: BusyEvent, day: date) -> bool:
    start_day = local_day(event.start)
    end_day = local_day(event.end)
    if end_day <= start_day:
        return day == start_day
    # All-day end dates are exclusive
    return start_day <= day < end_day


def _busy_interval(event: BusyEvent, day: date) -> Optional[tuple[int, int]]:
    """Minute interval the event blocks on the given day, if any."""
    start_day, start_min = _split(event.start)
    end_day, end_min = _split(event.end)

    if end_day < start_day:
        logger.warning(f"Ignoring busy event that ends before it starts: {event}")
        return None

    if end_day > start_day and end_min == 0:
        # Ends at midnight of a later day: blocks through end of previous day
        end_day -= timedelta(days=1)
        end_min = MINUTES_PER_DAY

    if not start_day <= day <= end_day:
        return None

    begin = start_min if day == start_day else 0
    finish = end_min if day == end_day else MINUTES_PER_DAY

    if finish <= begin:
        return None
    return begin, finish


def subtract_busy(window: TimeWindow, busy: Iterable[tuple[int, int]]) -> list[TimeWindow]:
    """Sweep a window against minute intervals, returning the gaps."""
    window_start = minute_of_day(window.start)
    window_end = minute_of_day(window.end)

    free: list[TimeWindow] = []
    cursor = window_start

    for busy_start, busy_end in sorted(busy):
        gap_end = min(busy_start, window_end)
        if cursor < gap_end:
            free.append(
                TimeWindow(
                    day=window.day,
                    start=_minutes_to_time(cursor),
                    end=_minutes_to_time(gap_end),
                )
            )
        cursor = max(cursor, busy_end)
        if cursor >= window_end:
            break

    if cursor < window_end:
        free.append(
            TimeWindow(
                day=window.day,
                start=_minutes_to_time(cursor),
                end=_minutes_to_time(window_end),
            )
        )

    return free


def reconcile(
    base_windows: Iterable[TimeWindow],
    busy_events: Iterable[BusyEvent],
) -> list[TimeWindow]:
    """Remove busy time from base availability windows.

    Args:
        base_windows: Day-long (or partial-day) windows the user offered
        busy_events: Calendar events blocking time

    Returns:
        Free windows in base-window order, each strictly non-empty.

    Example:
        >>> base = [TimeWindow(date(2026, 2, 10), time(8), time(18))]
        >>> busy = [BusyEvent("2026-02-10T09:00:00", "2026-02-10T10:00:00")]
        >>> [str(w) for w in reconcile(base, busy)]
        ['2026-02-10 08:00-09:00', '2026-02-10 10:00-18:00']
    """
    events = list(busy_events)
    free: list[TimeWindow] = []

    for window in base_windows:
        all_day = [e for e in events if e.all_day and _all_day_covers(e, window.day)]
        if all_day:
            logger.debug(f"All-day event blocks {window.day}, dropping window {window}")
            continue

        intervals = []
        for event in events:
            if event.all_day:
                continue
            interval = _busy_interval(event, window.day)
            if interval is not None:
                intervals.append(interval)

        if not intervals:
            free.append(window)
            continue

        free.extend(subtract_busy(window, intervals))

    return free


def parse_busy_events(raw_events: Iterable[dict]) -> list[BusyEvent]:
    """Build busy events from calendar payload dicts, skipping malformed ones."""
    events: list[BusyEvent] = []
    for raw in raw_events:
        try:
            event = BusyEvent.from_dict(raw)
            local_day(event.start)
            local_day(event.end)
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping malformed calendar event {raw!r}: {e}")
            continue
        events.append(event)
    return events
