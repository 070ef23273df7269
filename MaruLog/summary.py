"""
Per-category time totals over a window of the activity log.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from MaruLog.errors import InvalidRangeError
from MaruLog.models import CATEGORIES, ActivityCategory, ActivityLogEntry


def clipped_duration_ms(entry: ActivityLogEntry, window_start: int, window_end: int, now_ms: int) -> int:
    """Milliseconds of ``entry`` that fall inside ``[window_start, window_end)``."""
    start = max(entry.start_time, window_start)
    end = min(entry.effective_end(now_ms), window_end)
    return max(0, end - start)


def category_totals(
    entries: Iterable[ActivityLogEntry],
    window_start: int,
    window_end: int,
    now_ms: int,
) -> List[Tuple[ActivityCategory, int]]:
    """
    Time spent per category inside the window, in ``CATEGORIES`` order.
    Categories with nothing recorded are left out.
    """
    if window_end < window_start:
        raise InvalidRangeError(window_start, window_end)
    totals: Dict[str, int] = defaultdict(int)
    for entry in entries:
        totals[entry.category_id] += clipped_duration_ms(entry, window_start, window_end, now_ms)
    return [(category, totals[category.id]) for category in CATEGORIES if totals.get(category.id)]


def format_duration(ms: int) -> str:
    """Format milliseconds as ``HH:MM`` for display."""
    minutes = max(0, ms) // 60_000
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}"
