"""
The activity log store.

``ActivityLogStore`` owns the in-memory list of entries and is the only
thing that mutates it. It loads once from a persistence adapter when
constructed and saves after every successful mutation. At most one entry
is open (has no end time) at any moment; starting a new activity closes
the running one at the same instant.

Persistence failures never escape the store: they are logged, recorded in
``warnings``, and the in-memory collection remains the source of truth
for the rest of the session.
"""
from __future__ import annotations

import logging
import threading
from datetime import tzinfo
from typing import List, Optional, Tuple

from MaruLog.clock import DAY_MS, Clock, IdGenerator, SystemClock, start_of_local_day, uuid_generator
from MaruLog.errors import (
    ActivityLogError,
    InvalidRangeError,
    InvariantViolationError,
    NotFoundError,
    PersistenceCorruptError,
    PersistenceError,
)
from MaruLog.models import ActivityLogEntry, get_category
from MaruLog.storage import PersistenceAdapter

log = logging.getLogger(__name__)


def _check_range(start_time: int, end_time: int) -> None:
    if end_time < start_time:
        raise InvalidRangeError(start_time, end_time)


class ActivityLogStore:
    def __init__(
        self,
        adapter: PersistenceAdapter,
        clock: Optional[Clock] = None,
        id_generator: Optional[IdGenerator] = None,
        tz: Optional[tzinfo] = None,
    ):
        self._adapter = adapter
        self._clock = clock or SystemClock()
        self._new_id = id_generator or uuid_generator
        self.tz = tz # None means the system local zone
        self._lock = threading.RLock()
        self._entries: List[ActivityLogEntry] = []
        self._warnings: List[ActivityLogError] = []
        self._load()

    # ------------------------------------------------------------------
    # Persistence glue
    # ------------------------------------------------------------------
    def _load(self) -> None:
        try:
            self._entries = list(self._adapter.load())
        except PersistenceError as e:
            self._warn(e, "Failed to load activity log; starting with an empty log")
            self._entries = []
            return
        log.info(f"Activity log loaded with {len(self._entries)} entries.")
        self._drop_duplicate_ids()
        if len(self._open_indices()) > 1:
            self._resolve_multiple_open()

    def _drop_duplicate_ids(self) -> None:
        """Keep the first entry stored under each id; later ones are discarded."""
        seen = set()
        unique: List[ActivityLogEntry] = []
        dropped: List[str] = []
        for entry in self._entries:
            if entry.id in seen:
                dropped.append(entry.id)
                continue
            seen.add(entry.id)
            unique.append(entry)
        if dropped:
            self._entries = unique
            self._warn(
                PersistenceCorruptError(f"Duplicate entry ids in stored log: {', '.join(sorted(set(dropped)))}"),
                f"Dropped {len(dropped)} duplicate entries",
            )

    def _save(self) -> None:
        try:
            self._adapter.save(list(self._entries))
        except PersistenceError as e:
            self._warn(e, "Failed to save activity log; keeping in-memory state")

    def _warn(self, error: ActivityLogError, message: str) -> None:
        log.warning(f"{message}: {error}")
        self._warnings.append(error)

    @property
    def warnings(self) -> List[ActivityLogError]:
        """Non-fatal problems recorded during this session, oldest first."""
        with self._lock:
            return list(self._warnings)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def now_ms(self) -> int:
        """Current time according to the store's clock."""
        return self._clock.now_ms()

    def _open_indices(self) -> List[int]:
        return [i for i, entry in enumerate(self._entries) if entry.is_open]

    def _index_of(self, entry_id: str) -> Optional[int]:
        for i, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return i
        return None

    def _close_at(self, index: int, end_time: int) -> ActivityLogEntry:
        entry = self._entries[index]
        if end_time < entry.start_time:
            # Clock went backwards relative to the entry; close it as zero-length.
            log.debug(f"Clamping end time of {entry.id} from {end_time} to its start {entry.start_time}")
            end_time = entry.start_time
        closed = entry.model_copy(update={"end_time": end_time})
        self._entries[index] = closed
        return closed

    def _resolve_multiple_open(self) -> ActivityLogEntry:
        """Close every open entry except the most recently started one."""
        open_indices = self._open_indices()
        error = InvariantViolationError(
            f"{len(open_indices)} open entries found: "
            + ", ".join(self._entries[i].id for i in open_indices)
        )
        log.error(f"Activity log invariant violated, keeping only the latest open entry: {error}")
        self._warnings.append(error)

        # max() keeps the first of equal keys, so walk in reverse to prefer the later entry on ties.
        survivor_index = max(reversed(open_indices), key=lambda i: self._entries[i].start_time)
        survivor = self._entries[survivor_index]
        for i in open_indices:
            if i != survivor_index:
                self._close_at(i, survivor.start_time)
        self._save()
        return survivor

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def start(self, category_id: str) -> ActivityLogEntry:
        """
        Begin a new activity now, closing whatever was running at the same instant.
        """
        get_category(category_id)
        with self._lock:
            now = self.now_ms()
            for i in self._open_indices():
                closed = self._close_at(i, now)
                log.info(f"Stopped {closed.category_id} ({closed.id}) to start {category_id}.")
            entry = ActivityLogEntry(id=self._new_id(), category_id=category_id, start_time=now, end_time=None)
            self._entries.append(entry)
            self._save()
        log.info(f"Started {category_id} ({entry.id}) at {now}.")
        return entry

    def stop(self) -> Optional[ActivityLogEntry]:
        """Close the running activity now. Returns it, or None when nothing was running."""
        with self._lock:
            open_indices = self._open_indices()
            if not open_indices:
                log.debug("stop() called with no open entry; nothing to do.")
                return None
            now = self.now_ms()
            closed = [self._close_at(i, now) for i in open_indices]
            self._save()
        latest = max(reversed(closed), key=lambda e: e.start_time)
        log.info(f"Stopped {latest.category_id} ({latest.id}) at {latest.end_time}.")
        return latest

    def add_backfilled(self, category_id: str, start_time: int, end_time: int) -> ActivityLogEntry:
        """Record an already finished activity. Any running activity is left alone."""
        get_category(category_id)
        _check_range(start_time, end_time)
        with self._lock:
            entry = ActivityLogEntry(id=self._new_id(), category_id=category_id, start_time=start_time, end_time=end_time)
            self._entries.append(entry)
            self._save()
        log.info(f"Backfilled {category_id} ({entry.id}) {start_time}-{end_time}.")
        return entry

    def update(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        """
        Replace the stored entry with the same id.

        Raises ``NotFoundError`` for an unknown id, ``InvalidRangeError``
        when the new end precedes the new start, and
        ``InvariantViolationError`` when reopening the entry would leave two
        activities running. State is unchanged when any of these is raised.
        """
        get_category(entry.category_id)
        if entry.end_time is not None:
            _check_range(entry.start_time, entry.end_time)
        with self._lock:
            index = self._index_of(entry.id)
            if index is None:
                raise NotFoundError(entry.id)
            if entry.is_open:
                others = [self._entries[i].id for i in self._open_indices() if i != index]
                if others:
                    raise InvariantViolationError(
                        f"Cannot reopen {entry.id}: {others[0]} is already running."
                    )
            self._entries[index] = entry
            self._save()
        log.info(f"Updated entry {entry.id}.")
        return entry

    def remove(self, entry_id: str) -> bool:
        """Delete an entry. Unknown ids are ignored; returns whether anything was removed."""
        with self._lock:
            index = self._index_of(entry_id)
            if index is None:
                log.debug(f"remove() for unknown id {entry_id}; nothing to do.")
                return False
            del self._entries[index]
            self._save()
        log.info(f"Removed entry {entry_id}.")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def entries(self) -> List[ActivityLogEntry]:
        """Snapshot of all entries in insertion order."""
        with self._lock:
            return list(self._entries)

    def get(self, entry_id: str) -> Optional[ActivityLogEntry]:
        with self._lock:
            index = self._index_of(entry_id)
            return self._entries[index] if index is not None else None

    def current_open_entry(self) -> Optional[ActivityLogEntry]:
        with self._lock:
            open_indices = self._open_indices()
            if not open_indices:
                return None
            if len(open_indices) > 1:
                return self._resolve_multiple_open()
            return self._entries[open_indices[0]]

    def entries_overlapping(self, window_start: int, window_end: int) -> List[ActivityLogEntry]:
        """
        Entries intersecting the half-open window ``[window_start, window_end)``,
        sorted by start time. Open entries count as running until now.
        """
        if window_end < window_start:
            raise InvalidRangeError(window_start, window_end)
        with self._lock:
            now = self.now_ms()
            matches = [
                entry for entry in self._entries
                if entry.start_time < window_end and entry.effective_end(now) > window_start
            ]
        log.debug(f"{len(matches)} entries overlap [{window_start}, {window_end}).")
        return sorted(matches, key=lambda e: e.start_time)

    def today_window(self) -> Tuple[int, int]:
        """The current local day as a half-open ``(start, end)`` pair of epoch ms."""
        day_start = start_of_local_day(self.now_ms(), self.tz)
        return day_start, day_start + DAY_MS

    def today_entries(self) -> List[ActivityLogEntry]:
        return self.entries_overlapping(*self.today_window())
