from __future__ import annotations

import threading

from afterhandler.core.config.schemas import WorkerSettings
from afterhandler.core.history.schemas import HistoryRecord
from afterhandler.core.queue.schemas import SEARCH_INDEX
from afterhandler.core.registry.schemas import RegistryRecord
from afterhandler.core.workers.base import AfterhandlerWorker


class CountingWorker(AfterhandlerWorker):
    afterhandler_type = SEARCH_INDEX

    def __init__(self, config, queue_store) -> None:  # type: ignore[no-untyped-def]
        super().__init__(config, queue_store)
        self.handle_calls = 0
        self.released = False

    def handle(self, history: HistoryRecord) -> bool:
        self.handle_calls += 1
        return True

    def reindex_reset(self, key_id, options=None) -> bool:  # type: ignore[no-untyped-def]
        return True

    def reindex_add(self, record: RegistryRecord) -> bool:
        return True

    def _release(self) -> None:
        self.released = True


def test_empty_queue_waits_with_waiting_timeout(queue_store) -> None:
    worker = CountingWorker(WorkerSettings(is_active=True, handling_timeout_ms=5, waiting_timeout_ms=700), queue_store)
    sleeps: list[int] = []

    def fake_sleep(timeout_ms: int) -> None:
        sleeps.append(timeout_ms)
        if len(sleeps) == 2:
            worker.stop()

    worker._sleep = fake_sleep  # type: ignore[method-assign]
    worker.start()

    assert sleeps == [700, 700]
    assert worker.handle_calls == 0
    assert worker.state == "stopped"


class RecordingEvent(threading.Event):
    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float | None] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        return False


def test_run_once_throttles_outside_start(history_store, queue_store) -> None:
    worker = CountingWorker(WorkerSettings(is_active=True, handling_timeout_ms=250, waiting_timeout_ms=900), queue_store)
    wake = RecordingEvent()
    worker._wake = wake

    assert worker.run_once() is False
    history = history_store.append(HistoryRecord(record_id="r1", created_by="u1", operation="create"))
    queue_store.create(SEARCH_INDEX, history.id, "u1")
    assert worker.run_once() is True

    assert wake.waits == [0.9, 0.25]

    worker.stop()
    worker.run_once()
    assert wake.waits == [0.9, 0.25]


def test_start_is_noop_when_inactive(queue_store) -> None:
    worker = CountingWorker(WorkerSettings(is_active=False), queue_store)

    worker.start()

    assert worker.state == "idle"
    assert worker.is_running is False


def test_stop_wakes_a_sleeping_worker(queue_store) -> None:
    worker = CountingWorker(WorkerSettings(is_active=True, waiting_timeout_ms=60000), queue_store)
    thread = threading.Thread(target=worker.start, daemon=True)
    thread.start()

    worker.stop()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert worker.state == "stopped"


def test_stopped_worker_is_not_restarted(queue_store) -> None:
    worker = CountingWorker(WorkerSettings(is_active=True, waiting_timeout_ms=0), queue_store)
    worker.stop()

    worker.start()

    assert worker.state == "stopped"
    assert worker.is_running is False


def test_dispose_releases_references_once(queue_store) -> None:
    worker = CountingWorker(WorkerSettings(is_active=True), queue_store)

    assert worker.dispose() is True
    assert worker.state == "disposed"
    assert worker.config is None
    assert worker.queue_store is None
    assert worker.released is True
    assert worker.is_active is False

    assert worker.dispose() is False
    assert worker.run_once() is False
