from __future__ import annotations

from afterhandler.core.history.schemas import HistoryRecord
from afterhandler.core.queue.schemas import LEDGER, SEARCH_INDEX


def _enqueue(history_store, queue_store, record_id: str, key_id, type=SEARCH_INDEX) -> str:  # type: ignore[no-untyped-def]
    history = history_store.append(
        HistoryRecord(record_id=record_id, key_id=key_id, created_by="u1", operation="create")
    )
    return queue_store.create(type, history.id, "u1").id


def test_list_and_supersede_pending_entries_of_a_key(history_store, queue_store) -> None:
    a = _enqueue(history_store, queue_store, "r1", 5)
    b = _enqueue(history_store, queue_store, "r2", 5)
    ledger = _enqueue(history_store, queue_store, "r3", 5, type=LEDGER)
    other_key = _enqueue(history_store, queue_store, "r4", 6)

    pending = queue_store.list_not_synced_by_key_id(5, type=SEARCH_INDEX)
    assert {entry.id for entry in pending} == {a, b}

    assert queue_store.set_synced_with_error_by_key_id("5", "Superseded by reindex.", type=SEARCH_INDEX) == 2

    superseded = queue_store.get(a)
    assert superseded is not None
    assert superseded.synced is True
    assert superseded.error_message == "Superseded by reindex."
    assert queue_store.get(ledger).synced is False  # type: ignore[union-attr]
    assert queue_store.get(other_key).synced is False  # type: ignore[union-attr]


def test_get_last_by_key_id_and_clear_error(history_store, queue_store) -> None:
    _enqueue(history_store, queue_store, "r1", 5)
    last = _enqueue(history_store, queue_store, "r2", 5)

    found = queue_store.get_last_by_key_id(5)
    assert found is not None and found.id == last
    assert queue_store.get_last_by_key_id(404) is None

    queue_store.set_synced_with_error(last, "Boom")
    cleared = queue_store.clear_error(last)
    assert cleared is not None
    assert cleared.has_error is False
    assert cleared.error_message is None
    assert cleared.synced is True


def test_sync_status_reports_queue_and_latest_error(history_store, queue_store) -> None:
    _enqueue(history_store, queue_store, "r1", 5)
    errored = _enqueue(history_store, queue_store, "r2", 5)
    ignored = _enqueue(history_store, queue_store, "r3", 5)
    queue_store.set_synced_with_error(errored, "Index unavailable.")
    queue_store.set_synced_with_error(ignored, "Wrong operation type.")

    statuses = queue_store.sync_status(SEARCH_INDEX, key_ids=[5, 8])

    assert [status.key_id for status in statuses] == ["5", "8"]
    key_five, key_eight = statuses
    assert key_five.queue_length == 1
    assert key_five.total == 3
    assert key_five.status_message == "Index unavailable."
    assert key_five.errored_record_id == "r2"
    assert key_eight.total == 0
    assert key_eight.status_message is None
