from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from afterhandler.core.config.schemas import WorkerSettings
from afterhandler.core.errors import (
    AfterhandlerConfigError,
    DeepLinkRequestError,
    RecordValidationError,
    WrongOperationError,
)
from afterhandler.core.history.schemas import HistoryRecord, Operation
from afterhandler.core.http.client import send
from afterhandler.core.http.errors import HTTPRequestError
from afterhandler.core.queue.schemas import DEEP_LINK
from afterhandler.core.queue.store import QueueStore
from afterhandler.core.registry.reader import RegistryReader
from afterhandler.core.registry.schemas import RegistryRecord

from .base import AfterhandlerWorker

ENTITY = "record"
DEFAULT_TEMPLATE_NAME = "registry-record"
MISSING_DEEP_LINK_MESSAGE = "Deep link method and hash are required."


class DeepLinkOptions(BaseModel):
    url: str
    token: str = ""
    template_name: str = DEFAULT_TEMPLATE_NAME
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = Field(10000, gt=0)


def _deep_link_params(data: dict[str, Any]) -> tuple[str, str]:
    deep_link = data.get("deepLink")
    if not isinstance(deep_link, dict):
        raise RecordValidationError(MISSING_DEEP_LINK_MESSAGE)
    method = deep_link.get("method")
    link_hash = deep_link.get("hash")
    if not method or not link_hash:
        raise RecordValidationError(MISSING_DEEP_LINK_MESSAGE)
    return str(method), str(link_hash)


def _server_message(response_data: Any) -> str | None:
    if not isinstance(response_data, dict):
        return None
    error = response_data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    message = response_data.get("message")
    return str(message) if message else None


class DeepLinkAfterhandlerWorker(AfterhandlerWorker):
    """Requests a persistent short link for every created record.

    Only ``create`` is supported. A 400 from the link service is terminal
    (raised, so the entry keeps the server message); any other failure is
    retried on a later poll (``handle`` returns False).
    """

    afterhandler_type = DEEP_LINK

    def __init__(
        self,
        config: WorkerSettings,
        queue_store: QueueStore,
        logger: logging.Logger | None = None,
        registry: RegistryReader | None = None,
    ) -> None:
        super().__init__(config, queue_store, logger=logger, registry=registry)
        self.options: DeepLinkOptions | None = None
        if config.is_active:
            try:
                self.options = DeepLinkOptions.model_validate(config.options)
            except ValidationError as exc:
                raise AfterhandlerConfigError(f"invalid deep-link options: {exc}") from exc

    def handle(self, history: HistoryRecord) -> bool:
        if history.operation != "create":
            raise WrongOperationError()
        method, link_hash = _deep_link_params(history.data)
        handled = self.create(history.resolve_key_id(), ENTITY, history.record_id, {"method": method, "hash": link_hash})
        self.logger.info(
            "afterhandler_handling_result",
            extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "handled": handled}},
        )
        return handled

    def create(self, key_id: int | str | None, entity: str, id: str, data: dict[str, str]) -> bool:
        options = self.options
        if options is None:
            raise AfterhandlerConfigError("Deep link afterhandler is not active.")

        body = {
            "type": "external",
            "options": {
                "templateName": options.template_name,
                "templateMethod": data["method"],
                "filter": {"recordId": id},
            },
            "small": True,
            "definedHash": data["hash"],
        }
        headers = {"Content-Type": "application/json", **options.headers, "token": options.token}
        url = f"{options.url.rstrip('/')}/link"
        try:
            response = send("POST", url, headers=headers, body=body, timeout_s=options.timeout_ms / 1000.0)
        except HTTPRequestError as exc:
            diagnostic = {"entity": entity, "key_id": None if key_id is None else str(key_id), **exc.to_diagnostic()}
            if exc.status_code == 400:
                message = _server_message(exc.response_data) or str(exc)
                self.logger.warning("deep_link_request_rejected", extra={"extra_fields": diagnostic})
                raise DeepLinkRequestError(message) from exc
            self.logger.warning("deep_link_request_failed", extra={"extra_fields": diagnostic})
            return False

        self.logger.info("deep_link_response", extra={"extra_fields": {"entity": entity, "response": response}})
        return bool(response)

    def validate_record(self, record: RegistryRecord, operation: Operation) -> None:
        if not self.is_active or self.config is None or not self.config.is_key_enabled(record.key_id):
            return
        _deep_link_params(record.data)

    def reindex_reset(self, key_id: int | str, options: dict[str, Any] | None = None) -> bool:
        if self._skip_inactive("reindex_reset"):
            return True
        return True

    def reindex_add(self, record: RegistryRecord) -> bool:
        if self._skip_inactive("reindex_add"):
            return True
        return True

    def _release(self) -> None:
        self.options = None
