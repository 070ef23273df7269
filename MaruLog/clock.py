"""
Time and identifier sources injected into the activity log store.

The store never calls ``time`` or ``uuid`` directly; it asks a clock for the
current epoch milliseconds and an id generator for new entry ids, which
keeps its behaviour reproducible under test.
"""
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, time as dtime, tzinfo
from typing import Callable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

log = logging.getLogger(__name__)

DAY_MS = 86_400_000

IdGenerator = Callable[[], str]


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock in epoch milliseconds."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now_ms: int = 0) -> None:
        self._now_ms = now_ms

    def now_ms(self) -> int:
        return self._now_ms

    def set(self, now_ms: int) -> None:
        self._now_ms = now_ms

    def advance(self, delta_ms: int) -> int:
        self._now_ms += delta_ms
        return self._now_ms


def uuid_generator() -> str:
    return str(uuid.uuid4())


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """
    Map a configured zone name to a ``ZoneInfo``. ``None`` (or an unknown
    name, after a warning) means the system local zone.
    """
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        log.warning(f"Timezone '{name}' not found in system database. Using the system local zone.")
        return None
    except ValueError as e: # Malformed keys such as absolute paths
        log.error(f"Error initializing ZoneInfo with '{name}': {e}. Using the system local zone.")
        return None


def to_local_datetime(epoch_ms: int, tz: Optional[tzinfo] = None) -> datetime:
    """Epoch ms as a datetime in ``tz``; naive local time when ``tz`` is None."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=tz)


def from_local_datetime(value: datetime, tz: Optional[tzinfo] = None) -> int:
    """Epoch ms for ``value``; naive values are read in ``tz`` (or system local time)."""
    if value.tzinfo is None and tz is not None:
        value = value.replace(tzinfo=tz)
    return round(value.timestamp() * 1000)


def start_of_local_day(now_ms: int, tz: Optional[tzinfo] = None) -> int:
    """Epoch ms of the local midnight that begins the day containing ``now_ms``."""
    local_day = to_local_datetime(now_ms, tz).date()
    return from_local_datetime(datetime.combine(local_day, dtime.min, tzinfo=tz), tz)
