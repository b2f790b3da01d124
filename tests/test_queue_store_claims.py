from __future__ import annotations

import os
import time

import pytest

from afterhandler.core.history.schemas import HistoryRecord
from afterhandler.core.queue.schemas import DEEP_LINK, LEDGER
from afterhandler.core.queue.store import JsonlQueueStore, QueueStoreError


def _enqueue(history_store, queue_store, record_id: str, type=LEDGER) -> str:  # type: ignore[no-untyped-def]
    history = history_store.append(HistoryRecord(record_id=record_id, key_id=1, created_by="u1", operation="create"))
    return queue_store.create(type, history.id, "u1").id


def test_find_first_not_synced_claims_oldest_entry(tmp_path, history_store, queue_store) -> None:
    first = _enqueue(history_store, queue_store, "r1")
    second = _enqueue(history_store, queue_store, "r2")
    other = JsonlQueueStore(tmp_path, history_store, lease_s=60, instance_id="other-instance")

    claimed = queue_store.find_first_not_synced(LEDGER)
    assert claimed is not None
    assert claimed.id == first
    assert claimed.history.record_id == "r1"
    assert claimed.entry.claimed_by == "test-instance"

    # A second instance skips the leased entry.
    competing = other.find_first_not_synced(LEDGER)
    assert competing is not None
    assert competing.id == second

    # The owner can re-claim its own lease.
    again = queue_store.find_first_not_synced(LEDGER)
    assert again is not None and again.id == first


def test_expired_lease_is_claimable(tmp_path, history_store) -> None:
    short = JsonlQueueStore(tmp_path, history_store, lease_s=0, instance_id="crashed")
    other = JsonlQueueStore(tmp_path, history_store, lease_s=60, instance_id="survivor")
    entry_id = _enqueue(history_store, short, "r1")

    assert short.find_first_not_synced(LEDGER) is not None
    recovered = other.find_first_not_synced(LEDGER)

    assert recovered is not None and recovered.id == entry_id


def test_terminal_state_is_not_overwritten_after_lease_takeover(tmp_path, history_store) -> None:
    crashed = JsonlQueueStore(tmp_path, history_store, lease_s=0, instance_id="slow")
    survivor = JsonlQueueStore(tmp_path, history_store, lease_s=60, instance_id="survivor")
    entry_id = _enqueue(history_store, crashed, "r1")

    assert crashed.find_first_not_synced(LEDGER) is not None
    assert survivor.find_first_not_synced(LEDGER) is not None
    first = survivor.set_synced(entry_id)
    assert first is not None

    assert crashed.set_synced_with_error(entry_id, "late failure") is None
    assert crashed.set_synced(entry_id) is None

    stored = survivor.get(entry_id)
    assert stored is not None
    assert stored.synced is True
    assert stored.has_error is False
    assert stored.error_message is None
    assert stored.synced_at_iso == first.synced_at_iso


def test_synced_entries_are_never_returned(history_store, queue_store) -> None:
    ok = _enqueue(history_store, queue_store, "r1")
    failed = _enqueue(history_store, queue_store, "r2")

    queue_store.set_synced(ok)
    stored = queue_store.set_synced_with_error(failed, "Boom")

    assert stored is not None and stored.claimed_by is None
    assert queue_store.find_first_not_synced(LEDGER) is None


def test_types_are_polled_independently(history_store, queue_store) -> None:
    _enqueue(history_store, queue_store, "r1", type=DEEP_LINK)

    assert queue_store.find_first_not_synced(LEDGER) is None
    assert queue_store.find_first_not_synced(DEEP_LINK) is not None


def test_entries_without_history_are_skipped(queue_store) -> None:
    queue_store.create(LEDGER, "missing-history", "u1")

    assert queue_store.find_first_not_synced(LEDGER) is None


def test_busy_lock_raises_and_stale_lock_is_broken(monkeypatch, history_store, queue_store) -> None:
    monkeypatch.setattr("afterhandler.core.queue.store._LOCK_WAIT_S", 0.05)
    queue_store.lock_path.write_text("", encoding="utf-8")

    with pytest.raises(QueueStoreError):
        queue_store.find_first_not_synced(LEDGER)

    stale = time.time() - 3600
    os.utime(queue_store.lock_path, (stale, stale))
    assert queue_store.find_first_not_synced(LEDGER) is None
    assert not queue_store.lock_path.exists()
