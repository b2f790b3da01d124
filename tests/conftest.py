from __future__ import annotations

import logging
from collections.abc import Callable

import httpx
import pytest

from afterhandler.core.history.store import HistoryStore
from afterhandler.core.queue.store import JsonlQueueStore


@pytest.fixture(autouse=True)
def disable_file_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AFTERHANDLER_LOG_TO_FILE", "off")
    monkeypatch.delenv("AFTERHANDLER_CONFIG", raising=False)
    monkeypatch.delenv("AFTERHANDLER_STATE_DIR", raising=False)
    # configure_logging turns propagation off; caplog listens on the root logger.
    root = logging.getLogger("afterhandler")
    monkeypatch.setattr(root, "propagate", True)
    monkeypatch.setattr(root, "handlers", list(root.handlers))


@pytest.fixture
def history_store(tmp_path) -> HistoryStore:
    return HistoryStore(tmp_path)


@pytest.fixture
def queue_store(tmp_path, history_store: HistoryStore) -> JsonlQueueStore:
    return JsonlQueueStore(tmp_path, history_store, lease_s=60, instance_id="test-instance")


@pytest.fixture
def mock_http(monkeypatch: pytest.MonkeyPatch) -> Callable[[Callable[[httpx.Request], httpx.Response]], list[httpx.Request]]:
    """Route ``send`` through ``handler`` and return the list of captured requests."""

    def install(handler: Callable[[httpx.Request], httpx.Response]) -> list[httpx.Request]:
        requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        client = httpx.Client(transport=httpx.MockTransport(recording_handler))
        monkeypatch.setattr("afterhandler.core.http.client.get_http_client", lambda: client)
        return requests

    return install
