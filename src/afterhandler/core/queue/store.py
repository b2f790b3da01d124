from __future__ import annotations

import json
import os
import socket
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Protocol

from afterhandler.core.history.schemas import now_iso
from afterhandler.core.history.store import HistoryStore

from .schemas import AfterhandlerQueueEntry, AfterhandlerType, KeySyncStatus, QueuedHistory

_DEFAULT_LEASE_S = 300.0
_LOCK_WAIT_S = 5.0
_STALE_LOCK_S = 60.0
_STATUS_IGNORED_ERRORS = {"Wrong operation type.", "Already exists."}


class QueueStoreError(RuntimeError):
    pass


class QueueStore(Protocol):
    def create(self, type: AfterhandlerType, history_id: str, user: str) -> AfterhandlerQueueEntry: ...

    def find_first_not_synced(self, type: AfterhandlerType) -> QueuedHistory | None: ...

    def set_synced(self, id: str) -> AfterhandlerQueueEntry | None: ...

    def set_synced_with_error(self, id: str, error: str) -> AfterhandlerQueueEntry | None: ...

    def set_synced_with_error_by_key_id(
        self, key_id: int | str, error: str, type: AfterhandlerType | None = None
    ) -> int: ...


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


class JsonlQueueStore:
    """Afterhandler queue kept as a JSONL file next to the history log.

    ``find_first_not_synced`` claims the entry it returns: the entry gets a
    lease (``claimed_by``/``claimed_until_iso``) written under an exclusive
    file lock, so another process polling the same type skips it until the
    lease runs out or the entry is marked synced.
    """

    def __init__(
        self,
        state_dir: Path,
        history_store: HistoryStore,
        lease_s: float | None = None,
        instance_id: str | None = None,
    ) -> None:
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.file_path = self.state_dir / "afterhandlers.jsonl"
        self.lock_path = self.state_dir / "afterhandlers.lock"
        self.history_store = history_store
        self.lease_s = lease_s if lease_s is not None else float(os.getenv("AFTERHANDLER_QUEUE_LEASE_S", _DEFAULT_LEASE_S))
        self.instance_id = instance_id or f"{socket.gethostname()}:{os.getpid()}"

    def _load_all(self) -> list[AfterhandlerQueueEntry]:
        if not self.file_path.exists() or self.file_path.stat().st_size == 0:
            return []
        entries: list[AfterhandlerQueueEntry] = []
        with self.file_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AfterhandlerQueueEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    continue
        return entries

    def _rewrite(self, entries: list[AfterhandlerQueueEntry]) -> None:
        tmp_path = self.file_path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            for entry in entries:
                handle.write(json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n")
        tmp_path.replace(self.file_path)

    def create(self, type: AfterhandlerType, history_id: str, user: str) -> AfterhandlerQueueEntry:
        entry = AfterhandlerQueueEntry(type=type, history_id=history_id, created_by=user, updated_by=user)
        with self._file_lock():
            with self.file_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n")
        return entry

    def get(self, id: str) -> AfterhandlerQueueEntry | None:
        for entry in self._load_all():
            if entry.id == id:
                return entry
        return None

    def find_first_not_synced(self, type: AfterhandlerType) -> QueuedHistory | None:
        with self._file_lock():
            entries = self._load_all()
            pending = [entry for entry in entries if entry.type == type and not entry.synced and entry.history_id]
            if not pending:
                return None
            histories = self.history_store.get_many({entry.history_id for entry in pending})
            now = datetime.now(timezone.utc)
            # Stable sort keeps append order for equal timestamps.
            for entry in sorted(pending, key=lambda item: item.created_at_iso):
                history = histories.get(entry.history_id)
                if history is None or self._is_leased(entry, now):
                    continue
                entry.claimed_by = self.instance_id
                entry.claimed_until_iso = (now + timedelta(seconds=self.lease_s)).isoformat()
                self._rewrite(entries)
                return QueuedHistory(entry=entry.model_copy(), history=history)
        return None

    def set_synced(self, id: str) -> AfterhandlerQueueEntry | None:
        return self._update(id, synced=True)

    def set_synced_with_error(self, id: str, error: str) -> AfterhandlerQueueEntry | None:
        return self._update(id, synced=True, has_error=True, error_message=error)

    def clear_error(self, id: str) -> AfterhandlerQueueEntry | None:
        return self._update(id, has_error=False, error_message=None)

    def list_not_synced_by_key_id(
        self, key_id: int | str, type: AfterhandlerType | None = None
    ) -> list[AfterhandlerQueueEntry]:
        history_ids = self._history_ids_for_key(key_id)
        return [
            entry
            for entry in self._load_all()
            if not entry.synced and entry.history_id in history_ids and (type is None or entry.type == type)
        ]

    def set_synced_with_error_by_key_id(
        self, key_id: int | str, error: str, type: AfterhandlerType | None = None
    ) -> int:
        history_ids = self._history_ids_for_key(key_id)
        with self._file_lock():
            entries = self._load_all()
            changed = 0
            synced_at = now_iso()
            for entry in entries:
                if entry.synced or entry.history_id not in history_ids:
                    continue
                if type is not None and entry.type != type:
                    continue
                entry.synced = True
                entry.has_error = True
                entry.error_message = error
                entry.synced_at_iso = synced_at
                entry.claimed_by = None
                entry.claimed_until_iso = None
                changed += 1
            if changed:
                self._rewrite(entries)
        return changed

    def get_last_by_key_id(self, key_id: int | str) -> AfterhandlerQueueEntry | None:
        history_ids = self._history_ids_for_key(key_id)
        matches = [entry for entry in self._load_all() if entry.history_id in history_ids]
        if not matches:
            return None
        return max(enumerate(matches), key=lambda item: (item[1].created_at_iso, item[0]))[1]

    def sync_status(self, type: AfterhandlerType, key_ids: list[int | str] | None = None) -> list[KeySyncStatus]:
        entries = [entry for entry in self._load_all() if entry.type == type]
        histories = self.history_store.get_many({entry.history_id for entry in entries})
        wanted = {str(key_id) for key_id in key_ids} if key_ids is not None else None

        statuses: dict[str, KeySyncStatus] = {}
        latest_error_at: dict[str, str] = {}
        for entry in entries:
            history = histories.get(entry.history_id)
            if history is None:
                continue
            key = str(history.resolve_key_id())
            if wanted is not None and key not in wanted:
                continue
            status = statuses.setdefault(key, KeySyncStatus(key_id=key, type=type))
            status.total += 1
            if not entry.synced:
                status.queue_length += 1
            if entry.has_error and entry.error_message not in _STATUS_IGNORED_ERRORS:
                if entry.created_at_iso >= latest_error_at.get(key, ""):
                    latest_error_at[key] = entry.created_at_iso
                    status.status_message = entry.error_message
                    status.errored_record_id = history.record_id

        if wanted is not None:
            for key in wanted:
                statuses.setdefault(key, KeySyncStatus(key_id=key, type=type))
        return sorted(statuses.values(), key=lambda item: item.key_id)

    def _history_ids_for_key(self, key_id: int | str) -> set[str]:
        return {record.id for record in self.history_store.list_by_key_id(key_id)}

    def _update(self, id: str, **changes: object) -> AfterhandlerQueueEntry | None:
        """Apply ``changes`` to one entry. A synced entry is never synced again; returns None then."""
        with self._file_lock():
            entries = self._load_all()
            for entry in entries:
                if entry.id != id:
                    continue
                if changes.get("synced") and entry.synced:
                    return None
                for name, value in changes.items():
                    setattr(entry, name, value)
                if changes.get("synced"):
                    entry.synced_at_iso = now_iso()
                    entry.claimed_by = None
                    entry.claimed_until_iso = None
                self._rewrite(entries)
                return entry
        return None

    def _is_leased(self, entry: AfterhandlerQueueEntry, now: datetime) -> bool:
        if entry.claimed_by is None or entry.claimed_by == self.instance_id:
            return False
        claimed_until = _parse_iso(entry.claimed_until_iso)
        return claimed_until is not None and claimed_until > now

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        deadline = time.monotonic() + _LOCK_WAIT_S
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                os.close(fd)
                break
            except FileExistsError:
                self._break_stale_lock()
                if time.monotonic() >= deadline:
                    raise QueueStoreError(f"queue lock busy: {self.lock_path}")
                time.sleep(0.01)

        try:
            yield
        finally:
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass

    def _break_stale_lock(self) -> None:
        try:
            age_s = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return
        if age_s > _STALE_LOCK_S:
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass
