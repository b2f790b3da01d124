from __future__ import annotations

import json

import httpx

from afterhandler.core.config.schemas import WorkerSettings
from afterhandler.core.history.schemas import HistoryRecord
from afterhandler.core.queue.schemas import LEDGER
from afterhandler.core.registry.schemas import RegistryRecord
from afterhandler.core.workers.ledger import LedgerAfterhandlerWorker, is_success_response


def _settings(is_active: bool = True) -> WorkerSettings:
    return WorkerSettings(
        is_active=is_active,
        handling_timeout_ms=0,
        waiting_timeout_ms=0,
        provider="ledger",
        options={"api_url": "http://ledger.local"},
    )


def test_created_record_is_written_to_ledger_and_synced(mock_http, history_store, queue_store) -> None:
    requests = mock_http(lambda request: httpx.Response(200, request=request, json={"status": 200}))
    history = history_store.append(
        HistoryRecord(record_id="r1", key_id=3, created_by="u1", operation="create", data={"name": "X"})
    )
    entry = queue_store.create(LEDGER, history.id, "u1")

    LedgerAfterhandlerWorker(_settings(), queue_store).run_once()

    assert len(requests) == 1
    assert requests[0].method == "POST"
    assert str(requests[0].url) == "http://ledger.local/api/documents"
    assert json.loads(requests[0].content) == {
        "id": "record-r1",
        "name": "record",
        "issuerId": "u1",
        "documentData": {"name": "X"},
    }
    stored = queue_store.get(entry.id)
    assert stored is not None and stored.synced is True and stored.has_error is False


def test_error_status_in_body_keeps_entry_pending(mock_http, history_store, queue_store) -> None:
    mock_http(lambda request: httpx.Response(200, request=request, json={"status": 409}))
    history = history_store.append(HistoryRecord(record_id="r1", created_by="u1", operation="delete"))
    entry = queue_store.create(LEDGER, history.id, "u1")

    LedgerAfterhandlerWorker(_settings(), queue_store).run_once()

    stored = queue_store.get(entry.id)
    assert stored is not None and stored.synced is False


def test_inactive_worker_skips_reindex_without_http(mock_http, queue_store) -> None:
    requests = mock_http(lambda request: httpx.Response(200, request=request, json={}))
    worker = LedgerAfterhandlerWorker(_settings(is_active=False), queue_store)

    assert worker.provider is None
    assert worker.reindex_reset(3) is True
    assert worker.reindex_add(RegistryRecord(id="r1", key_id=3)) is True
    assert requests == []


def test_reindex_add_creates_missing_documents_and_updates_existing(mock_http, queue_store) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path.endswith("record-known"):
            return httpx.Response(200, request=request, json={"id": "record-known"})
        if request.method == "GET":
            return httpx.Response(404, request=request, json={"error": "not found"})
        return httpx.Response(200, request=request, json={"status": 200})

    requests = mock_http(handler)
    worker = LedgerAfterhandlerWorker(_settings(), queue_store)

    assert worker.reindex_add(RegistryRecord(id="new", key_id=3, created_by="u1")) is True
    assert worker.reindex_add(RegistryRecord(id="known", key_id=3, updated_by="u2")) is True

    writes = [(request.method, request.url.path) for request in requests if request.method != "GET"]
    assert writes == [("POST", "/api/documents"), ("PUT", "/api/documents/record-known")]


def test_is_success_response() -> None:
    assert is_success_response({"status": 201}) is True
    assert is_success_response({"id": "record-r1"}) is True
    assert is_success_response({"status": 500}) is False
    assert is_success_response(None) is False
