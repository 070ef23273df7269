"""
Persistence for the activity log.

The whole log is stored as one JSON document::

    {"schemaVersion": 1, "entries": [{"id": ..., "categoryId": ..., "startTime": ..., "endTime": ...}]}

A bare JSON list of entries (the un-versioned shape written before the
schema version existed) is still accepted on load as version 0.
"""
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Union

from pydantic import ValidationError

from MaruLog.errors import PersistenceCorruptError, PersistenceIOError
from MaruLog.models import SCHEMA_VERSION, ActivityLogDocument, ActivityLogEntry

log = logging.getLogger(__name__)

LEGACY_SCHEMA_VERSION = 0


class PersistenceAdapter(Protocol):
    def load(self) -> List[ActivityLogEntry]: ...

    def save(self, entries: Iterable[ActivityLogEntry]) -> None: ...


def encode_entries(entries: Iterable[ActivityLogEntry]) -> str:
    document = ActivityLogDocument(schema_version=SCHEMA_VERSION, entries=list(entries))
    return document.model_dump_json(by_alias=True, indent=2)


def decode_entries(blob: Union[str, bytes]) -> List[ActivityLogEntry]:
    """
    Parse a stored blob back into entries, in stored order.

    Raises ``PersistenceCorruptError`` for anything that is not a valid
    document of a known schema version.
    """
    if isinstance(blob, bytes):
        try:
            blob = blob.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PersistenceCorruptError(f"Stored activity log is not valid UTF-8: {e}") from e
    if not blob.strip():
        return []

    try:
        raw = json.loads(blob)
    except json.JSONDecodeError as e:
        raise PersistenceCorruptError(f"Stored activity log is not valid JSON: {e}") from e

    if isinstance(raw, list):
        raw = {"schemaVersion": LEGACY_SCHEMA_VERSION, "entries": raw}
    elif not isinstance(raw, dict):
        raise PersistenceCorruptError(f"Stored activity log has unexpected top-level type {type(raw).__name__}.")

    version = raw.get("schemaVersion")
    if not isinstance(version, int) or isinstance(version, bool):
        raise PersistenceCorruptError(f"Stored activity log has no usable schemaVersion (got {version!r}).")
    if version > SCHEMA_VERSION:
        raise PersistenceCorruptError(
            f"Stored activity log uses schema version {version}; this release understands up to {SCHEMA_VERSION}."
        )

    try:
        document = ActivityLogDocument.model_validate(raw)
    except ValidationError as e:
        raise PersistenceCorruptError(f"Stored activity log failed validation: {e}") from e
    if version < SCHEMA_VERSION:
        log.info(f"Read {len(document.entries)} entries from schema version {version} document.")
    return document.entries


class JsonFileAdapter:
    """
    Keeps the log in a single UTF-8 JSON file.

    A file that cannot be parsed is moved aside to ``<name>.corrupt-<timestamp>``
    before the error is raised, so the next save never overwrites it. If the
    move itself fails, saving is refused for the rest of the session.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._save_blocked = False

    def load(self) -> List[ActivityLogEntry]:
        if not self.path.exists():
            log.info(f"No activity log at {self.path}; starting empty.")
            return []
        try:
            blob = self.path.read_bytes()
        except OSError as e:
            raise PersistenceIOError(f"Could not read activity log {self.path}: {e}") from e
        try:
            entries = decode_entries(blob)
        except PersistenceCorruptError as e:
            moved_to = self._quarantine()
            raise PersistenceCorruptError(f"{e} (original kept at {moved_to})") from e
        log.debug(f"Loaded {len(entries)} entries from {self.path}")
        return entries

    def _quarantine(self) -> Path:
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, target)
        except OSError as e:
            log.error(f"Could not move unreadable activity log {self.path} aside: {e}. Saving is disabled.", exc_info=True)
            self._save_blocked = True
            return self.path
        log.warning(f"Moved unreadable activity log {self.path} to {target}")
        return target

    def save(self, entries: Iterable[ActivityLogEntry]) -> None:
        if self._save_blocked:
            raise PersistenceIOError(f"Refusing to overwrite unreadable activity log {self.path}.")
        blob = encode_entries(entries)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(blob, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise PersistenceIOError(f"Could not write activity log {self.path}: {e}") from e
        log.debug(f"Saved activity log to {self.path}")


class MemoryAdapter:
    """Holds the encoded log in memory; nothing touches the filesystem."""

    def __init__(self, blob: Optional[str] = None) -> None:
        self.blob = blob
        self.save_count = 0

    @classmethod
    def with_entries(cls, entries: Iterable[ActivityLogEntry]) -> "MemoryAdapter":
        return cls(encode_entries(entries))

    def load(self) -> List[ActivityLogEntry]:
        if self.blob is None:
            return []
        return decode_entries(self.blob)

    def save(self, entries: Iterable[ActivityLogEntry]) -> None:
        self.blob = encode_entries(entries)
        self.save_count += 1
