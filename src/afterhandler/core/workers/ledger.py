from __future__ import annotations

import logging
from typing import Any

from afterhandler.core.config.schemas import WorkerSettings
from afterhandler.core.errors import AfterhandlerConfigError, WrongOperationError
from afterhandler.core.history.schemas import HistoryRecord
from afterhandler.core.providers.base import SyncProvider
from afterhandler.core.providers.factory import build_provider
from afterhandler.core.providers.ledger import LedgerProvider
from afterhandler.core.queue.schemas import LEDGER
from afterhandler.core.queue.store import QueueStore
from afterhandler.core.registry.reader import RegistryReader
from afterhandler.core.registry.schemas import RegistryRecord

from .base import AfterhandlerWorker

ENTITY = "record"
SYSTEM_USER = "system"


def is_success_response(result: Any) -> bool:
    if result is None:
        return False
    if not isinstance(result, dict) or "status" not in result:
        return True
    try:
        status = int(result["status"])
    except (TypeError, ValueError):
        return False
    return 200 <= status < 300


class LedgerAfterhandlerWorker(AfterhandlerWorker):
    """Mirrors every record mutation into the permissioned ledger.

    Ledger documents are append-only, so ``reindex_reset`` has nothing to
    clear; ``reindex_add`` upserts the record's current state.
    """

    afterhandler_type = LEDGER

    def __init__(
        self,
        config: WorkerSettings,
        queue_store: QueueStore,
        logger: logging.Logger | None = None,
        registry: RegistryReader | None = None,
        provider: SyncProvider | None = None,
    ) -> None:
        super().__init__(config, queue_store, logger=logger, registry=registry)
        self.provider: SyncProvider | None = provider
        if self.provider is None and config.is_active:
            self.provider = build_provider(config.provider or LedgerProvider.name, config.options, logger=self.logger)

    def _require_provider(self) -> SyncProvider:
        if self.provider is None:
            raise AfterhandlerConfigError("Ledger afterhandler is not active.")
        return self.provider

    def handle(self, history: HistoryRecord) -> bool:
        provider = self._require_provider()
        if history.operation == "create":
            result = provider.create_data(ENTITY, history.record_id, history.created_by, history.data)
        elif history.operation == "update":
            result = provider.update_data(ENTITY, history.record_id, history.created_by, history.data)
        elif history.operation == "delete":
            result = provider.delete_data(ENTITY, history.record_id, history.created_by)
        else:
            raise WrongOperationError()

        handled = is_success_response(result)
        self.logger.info(
            "afterhandler_handling_result",
            extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "handled": handled}},
        )
        return handled

    def reindex_reset(self, key_id: int | str, options: dict[str, Any] | None = None) -> bool:
        if self._skip_inactive("reindex_reset"):
            return True
        self.logger.info(
            "afterhandler_reindex_reset_skipped",
            extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "key_id": str(key_id), "reason": "append_only"}},
        )
        return True

    def reindex_add(self, record: RegistryRecord) -> bool:
        if self._skip_inactive("reindex_add"):
            return True
        provider = self._require_provider()
        user_id = record.updated_by or record.created_by or SYSTEM_USER
        existing = provider.get_data(ENTITY, record.id)
        if existing is None:
            result = provider.create_data(ENTITY, record.id, user_id, record.data)
        else:
            result = provider.update_data(ENTITY, record.id, user_id, record.data)
        return is_success_response(result)

    def _release(self) -> None:
        self.provider = None
