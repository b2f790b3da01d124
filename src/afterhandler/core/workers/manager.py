from __future__ import annotations

import logging
import threading
from typing import Any

from pydantic import BaseModel, Field

from afterhandler.core.cache.ttl import TTLCache
from afterhandler.core.config.schemas import AfterhandlerSettings
from afterhandler.core.errors import AfterhandlerConfigError, ReindexInProgressError
from afterhandler.core.history.schemas import HistoryRecord, Operation
from afterhandler.core.history.store import HistoryStore
from afterhandler.core.logging.context import log_context
from afterhandler.core.queue.schemas import AFTERHANDLER_TYPES, AfterhandlerQueueEntry, AfterhandlerType
from afterhandler.core.queue.store import QueueStore
from afterhandler.core.registry.reader import RegistryReader
from afterhandler.core.registry.schemas import RegistryRecord

from .base import AfterhandlerWorker
from .deep_link import DeepLinkAfterhandlerWorker
from .ledger import LedgerAfterhandlerWorker
from .search_index import SearchIndexAfterhandlerWorker

REINDEX_CHUNK_SIZE = 10
KEY_META_CACHE_S = 30
SUPERSEDED_BY_REINDEX = "Superseded by reindex."

WORKER_TYPES: dict[str, type[AfterhandlerWorker]] = {
    LedgerAfterhandlerWorker.afterhandler_type: LedgerAfterhandlerWorker,
    SearchIndexAfterhandlerWorker.afterhandler_type: SearchIndexAfterhandlerWorker,
    DeepLinkAfterhandlerWorker.afterhandler_type: DeepLinkAfterhandlerWorker,
}


class ReindexResult(BaseModel):
    key_id: str
    types: list[str] = Field(default_factory=list)
    superseded: int = 0
    added: int = 0
    failed: int = 0


class Afterhandler:
    """Owns one worker per sync type and the flows that span all of them."""

    def __init__(
        self,
        settings: AfterhandlerSettings,
        queue_store: QueueStore,
        history_store: HistoryStore,
        registry: RegistryReader | None = None,
        workers: list[AfterhandlerWorker] | None = None,
    ) -> None:
        self.settings = settings
        self.queue_store = queue_store
        self.history_store = history_store
        self.registry = registry
        self.logger = logging.getLogger("afterhandler.manager")
        self.workers: dict[str, AfterhandlerWorker] = {}
        for worker in workers or []:
            self.workers[worker.afterhandler_type] = worker
        for afterhandler_type in AFTERHANDLER_TYPES:
            if afterhandler_type in self.workers:
                continue
            worker_cls = WORKER_TYPES.get(afterhandler_type)
            if worker_cls is None:
                raise AfterhandlerConfigError(f"unknown afterhandler type: {afterhandler_type}")
            self.workers[afterhandler_type] = worker_cls(
                settings.workers.for_type(afterhandler_type), queue_store, registry=registry
            )
        self._threads: list[threading.Thread] = []
        self._key_meta_cache: TTLCache[list[str]] = TTLCache(KEY_META_CACHE_S)
        self._reindexing: set[str] = set()
        self._reindex_lock = threading.Lock()

    def start(self) -> None:
        for afterhandler_type, worker in self.workers.items():
            if not worker.is_active:
                self.logger.info("afterhandler_not_active", extra={"extra_fields": {"afterhandler_type": afterhandler_type}})
                continue
            thread = threading.Thread(target=worker.start, name=f"afterhandler-{afterhandler_type}", daemon=True)
            thread.start()
            self._threads.append(thread)
        self.logger.info("afterhandlers_started", extra={"extra_fields": {"threads": len(self._threads)}})

    def stop(self, timeout_s: float | None = None) -> None:
        for worker in self.workers.values():
            worker.stop()
        for thread in self._threads:
            thread.join(timeout_s)
        self._threads = [thread for thread in self._threads if thread.is_alive()]
        self.logger.info("afterhandlers_stopped", extra={"extra_fields": {"still_running": len(self._threads)}})

    def dispose(self) -> None:
        self.stop()
        for worker in self.workers.values():
            worker.dispose()

    def validate_record(self, record: RegistryRecord, operation: Operation) -> None:
        for worker in self.workers.values():
            worker.validate_record(record, operation)

    def enqueue(self, history: HistoryRecord, key_afterhandlers: list[str] | None = None) -> list[AfterhandlerQueueEntry]:
        """Append ``history`` and create one queue entry per sync type enabled for its key."""
        key_id = history.resolve_key_id()
        if key_afterhandlers is None:
            key_afterhandlers = self._key_afterhandlers(key_id)

        self.history_store.append(history)
        created: list[AfterhandlerQueueEntry] = []
        for afterhandler_type, worker in self.workers.items():
            config = worker.config
            enabled_by_config = config is not None and config.is_key_enabled(key_id)
            if not enabled_by_config and afterhandler_type not in key_afterhandlers:
                continue
            created.append(self.queue_store.create(afterhandler_type, history.id, history.created_by))

        self.logger.info(
            "afterhandler_entries_created",
            extra={"extra_fields": {"history_id": history.id, "types": [entry.type for entry in created]}},
        )
        return created

    def reindex(
        self,
        key_id: int | str,
        types: list[str] | None = None,
        index_options: dict[str, Any] | None = None,
    ) -> ReindexResult:
        if self.registry is None:
            raise AfterhandlerConfigError("registry reader is required for reindex")
        unknown = [item for item in types or [] if item not in self.workers]
        if unknown:
            raise AfterhandlerConfigError(f"unknown afterhandler types: {', '.join(unknown)}")

        marker = str(key_id)
        with self._reindex_lock:
            if marker in self._reindexing:
                raise ReindexInProgressError("Reindexing already in progress.")
            self._reindexing.add(marker)

        try:
            with log_context(key_id=marker):
                return self._reindex(key_id, types, index_options or {})
        finally:
            with self._reindex_lock:
                self._reindexing.discard(marker)

    def _reindex(self, key_id: int | str, types: list[str] | None, index_options: dict[str, Any]) -> ReindexResult:
        selected = [
            worker
            for afterhandler_type, worker in self.workers.items()
            if (types is None or afterhandler_type in types) and worker.is_active
        ]
        result = ReindexResult(key_id=str(key_id), types=[worker.afterhandler_type for worker in selected])
        if not selected:
            self.logger.info("afterhandler_reindex_nothing_selected", extra={"extra_fields": {"types": types}})
            return result

        self.logger.info("afterhandler_reindex_started", extra={"extra_fields": {"types": result.types}})
        for worker in selected:
            result.superseded += self.queue_store.set_synced_with_error_by_key_id(
                key_id, SUPERSEDED_BY_REINDEX, type=worker.afterhandler_type
            )
            worker.reindex_reset(key_id, index_options)

        offset = 0
        while True:
            records = self.registry.list_records(key_id, offset, REINDEX_CHUNK_SIZE)
            for record in records:
                for worker in selected:
                    if self._reindex_add(worker, record):
                        result.added += 1
                    else:
                        result.failed += 1
            if len(records) < REINDEX_CHUNK_SIZE:
                break
            offset += REINDEX_CHUNK_SIZE

        self.logger.info("afterhandler_reindex_completed", extra={"extra_fields": result.model_dump()})
        return result

    def _reindex_add(self, worker: AfterhandlerWorker, record: RegistryRecord) -> bool:
        try:
            return worker.reindex_add(record)
        except Exception:
            self.logger.exception(
                "afterhandler_reindex_add_failed",
                extra={"extra_fields": {"afterhandler_type": worker.afterhandler_type, "record_id": record.id}},
            )
            return False

    def _key_afterhandlers(self, key_id: int | str | None) -> list[str]:
        if self.registry is None or key_id is None:
            return []
        registry = self.registry

        def load() -> list[str]:
            key = registry.get_key(key_id)
            return key.afterhandlers if key is not None else []

        return self._key_meta_cache.get_or_set(str(key_id), load)

    def worker(self, afterhandler_type: AfterhandlerType) -> AfterhandlerWorker:
        return self.workers[afterhandler_type]
