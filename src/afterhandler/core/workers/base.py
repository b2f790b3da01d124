from __future__ import annotations

import gc
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from afterhandler.core.config.schemas import WorkerSettings
from afterhandler.core.history.schemas import HistoryRecord, Operation
from afterhandler.core.logging.context import log_context
from afterhandler.core.queue.schemas import AfterhandlerType, QueuedHistory
from afterhandler.core.queue.store import QueueStore
from afterhandler.core.registry.reader import RegistryReader
from afterhandler.core.registry.schemas import RegistryRecord

_WORKER_STATES = {"idle", "running", "stopped", "disposed"}


class AfterhandlerWorker(ABC):
    """Polls the queue for one sync type and dispatches each entry to ``handle``.

    Lifecycle is ``idle -> running -> stopped -> disposed``. ``start`` blocks
    until ``stop`` is called (from a signal handler or another thread). A
    stopped worker is not restarted; build a new one instead.

    Outcome of one dispatch:

    * ``handle`` returns True: the entry is marked synced.
    * ``handle`` returns False: the entry stays pending and is polled again.
    * ``handle`` raises: the entry is marked synced with the error message and
      is never retried.
    """

    afterhandler_type: ClassVar[AfterhandlerType]

    def __init__(
        self,
        config: WorkerSettings,
        queue_store: QueueStore,
        logger: logging.Logger | None = None,
        registry: RegistryReader | None = None,
    ) -> None:
        self.config: WorkerSettings | None = config
        self.queue_store: QueueStore | None = queue_store
        self.registry = registry
        self.logger = logger or logging.getLogger(f"afterhandler.workers.{self.afterhandler_type}")
        self.state = "idle"
        self._running = False
        self._stop_requested = False
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._idle = threading.Event()
        self._idle.set()

    @property
    def is_active(self) -> bool:
        return bool(self.config is not None and self.config.is_active)

    @property
    def is_running(self) -> bool:
        return self._running

    def _set_state(self, state: str) -> None:
        if state not in _WORKER_STATES:
            raise ValueError(f"unknown worker state: {state}")
        previous, self.state = self.state, state
        if previous != state:
            self.logger.info(
                "afterhandler_state_changed",
                extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "from": previous, "to": state}},
            )

    def start(self) -> None:
        if not self.is_active:
            self.logger.info("afterhandler_not_active", extra={"extra_fields": {"afterhandler_type": self.afterhandler_type}})
            return

        with self._lock:
            if self._stop_requested or self.state != "idle":
                self.logger.warning(
                    "afterhandler_start_ignored",
                    extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "state": self.state}},
                )
                return
            self._running = True
            self._idle.clear()
            self._set_state("running")

        try:
            while self._running:
                self.run_once()
        finally:
            self._set_state("stopped")
            self._idle.set()

    def stop(self) -> None:
        with self._lock:
            self._stop_requested = True
            self._running = False
            if self.state == "idle":
                self._set_state("stopped")
        self._wake.set()
        self.logger.info("afterhandler_stop_requested", extra={"extra_fields": {"afterhandler_type": self.afterhandler_type}})

    def dispose(self) -> bool:
        """Release config, store and provider references and run a GC cycle.

        Waits for an in-flight dispatch to finish. Returns True when the
        references were released by this call, False if already disposed.
        """
        if self.state == "disposed":
            return False
        self.stop()
        self._idle.wait()
        self._release()
        self.config = None
        self.queue_store = None
        self.registry = None
        self._set_state("disposed")
        gc.collect()
        return True

    def _release(self) -> None:
        """Drop type-specific handles. Overridden by workers that hold a provider."""

    def run_once(self) -> bool:
        """Poll and dispatch at most one queue entry. Returns True if one was dispatched.

        Throttles the same way inside or outside ``start``; only ``stop`` cuts the wait short.
        """
        config = self.config
        queue_store = self.queue_store
        if config is None or queue_store is None:
            self._running = False
            return False

        try:
            queued = queue_store.find_first_not_synced(self.afterhandler_type)
        except Exception:
            self.logger.exception("afterhandler_queue_read_failed", extra={"extra_fields": {"afterhandler_type": self.afterhandler_type}})
            self._sleep(config.waiting_timeout_ms)
            return False

        if queued is None:
            self._sleep(config.waiting_timeout_ms)
            return False

        self._dispatch(queue_store, queued)
        self._sleep(config.handling_timeout_ms)
        return True

    def _dispatch(self, queue_store: QueueStore, queued: QueuedHistory) -> None:
        history = queued.history
        with log_context(
            worker_type=self.afterhandler_type,
            queue_entry_id=queued.id,
            history_id=history.id,
            record_id=history.record_id,
            key_id=history.resolve_key_id(),
        ):
            self.logger.info("afterhandler_handling_started", extra={"extra_fields": {"operation": history.operation}})
            try:
                handled = self.handle(history)
            except Exception as exc:
                error_message = str(exc) or exc.__class__.__name__
                self.logger.warning(
                    "afterhandler_handling_failed",
                    exc_info=True,
                    extra={"extra_fields": {"operation": history.operation, "error": error_message}},
                )
                try:
                    stored = queue_store.set_synced_with_error(queued.id, error_message)
                except Exception:
                    self.logger.exception("afterhandler_set_synced_with_error_failed", extra={"extra_fields": {"error": error_message}})
                else:
                    event = "afterhandler_synced_with_error" if stored is not None else "afterhandler_already_synced"
                    self.logger.info(event, extra={"extra_fields": {"error": error_message}})
                return

            if not handled:
                self.logger.info("afterhandler_not_handled", extra={"extra_fields": {"operation": history.operation}})
                return

            try:
                stored = queue_store.set_synced(queued.id)
            except Exception:
                self.logger.exception("afterhandler_set_synced_failed")
            else:
                event = "afterhandler_synced" if stored is not None else "afterhandler_already_synced"
                self.logger.info(event, extra={"extra_fields": {"operation": history.operation}})

    def _sleep(self, timeout_ms: int) -> None:
        if timeout_ms <= 0 or self._stop_requested:
            return
        self._wake.wait(timeout_ms / 1000.0)

    def _skip_inactive(self, action: str) -> bool:
        if self.is_active:
            return False
        self.logger.info(
            f"afterhandler_{action}_not_active",
            extra={"extra_fields": {"afterhandler_type": self.afterhandler_type}},
        )
        return True

    @abstractmethod
    def handle(self, history: HistoryRecord) -> bool: ...

    @abstractmethod
    def reindex_reset(self, key_id: int | str, options: dict[str, Any] | None = None) -> bool: ...

    @abstractmethod
    def reindex_add(self, record: RegistryRecord) -> bool: ...

    def validate_record(self, record: RegistryRecord, operation: Operation) -> None:
        return None
