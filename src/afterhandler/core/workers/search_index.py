from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from afterhandler.core.config.schemas import WorkerSettings
from afterhandler.core.errors import AfterhandlerConfigError, SearchIndexError, WrongOperationError
from afterhandler.core.history.schemas import HistoryRecord
from afterhandler.core.http.client import send
from afterhandler.core.http.errors import HTTPRequestError
from afterhandler.core.logging.redact import redact_headers
from afterhandler.core.providers.base import DEFAULT_HEADERS, ApiMethod, external_data_id, merge_api_methods
from afterhandler.core.queue.schemas import SEARCH_INDEX
from afterhandler.core.queue.store import QueueStore
from afterhandler.core.registry.reader import RegistryReader
from afterhandler.core.registry.schemas import RegistryRecord

from .base import AfterhandlerWorker

ENTITY = "record"
URL_DATA_ID_KEY = "{id}"
URL_INDEX_ID_KEY = "{key-id}"
DEFAULT_API_URL = "http://localhost:9200"
DEFAULT_REQUEST_ERROR = "Search index request error."
DEFAULT_API_METHODS: dict[str, ApiMethod] = {
    "create_or_update_data": ApiMethod(method="PUT", url="/register_key_{key-id}/_doc/{id}"),
    "delete_data": ApiMethod(method="DELETE", url="/register_key_{key-id}/_doc/{id}"),
    "drop_index": ApiMethod(method="DELETE", url="/register_key_{key-id}"),
    "create_index": ApiMethod(method="PUT", url="/register_key_{key-id}"),
    "get_index_count": ApiMethod(method="GET", url="/register_key_{key-id}/_count"),
}
HANDLED_RESULTS = {"created", "updated", "deleted"}


class SearchIndexOptions(BaseModel):
    api_url: str = DEFAULT_API_URL
    api_methods: dict[str, ApiMethod] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = Field(20000, gt=0)


def _error_reason(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and error.get("reason"):
        return str(error["reason"])
    if isinstance(error, str) and error:
        return error
    return None


def _process_properties(properties: dict[str, Any] | None) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for name, prop in (properties or {}).items():
        if not isinstance(prop, dict):
            continue
        field_type = prop.get("typeElastic")

        if prop.get("type") == "object" and prop.get("properties"):
            result[name] = {"properties": _process_properties(prop["properties"])}

        items = prop.get("items")
        if prop.get("type") == "array" and isinstance(items, dict):
            result[name] = {"properties": _process_properties(items.get("properties"))}
        elif field_type == "text":
            result[name] = {"type": field_type, "fields": {"keyword": {"type": "keyword"}}}
        elif field_type:
            result[name] = {"type": field_type}
    return result


def index_document(record_id: str, key_id: int | str | None, data: dict[str, Any]) -> dict[str, Any]:
    return {"id": record_id, "keyId": key_id, "data": data}


def schema_to_mappings(schema: dict[str, Any]) -> dict[str, Any]:
    """Build index mappings from a key JSON schema (``typeElastic`` per property)."""
    return {
        "properties": _process_properties(
            {"data": {"type": "object", "properties": schema.get("properties") or {}}}
        )
    }


class SearchIndexAfterhandlerWorker(AfterhandlerWorker):
    """Keeps one search index per key in step with the record store."""

    afterhandler_type = SEARCH_INDEX

    def __init__(
        self,
        config: WorkerSettings,
        queue_store: QueueStore,
        logger: logging.Logger | None = None,
        registry: RegistryReader | None = None,
    ) -> None:
        super().__init__(config, queue_store, logger=logger, registry=registry)
        try:
            options = SearchIndexOptions.model_validate(config.options)
        except ValidationError as exc:
            raise AfterhandlerConfigError(f"invalid search index options: {exc}") from exc
        self.api_url = options.api_url.rstrip("/")
        self.api_methods = merge_api_methods(DEFAULT_API_METHODS, options.api_methods)
        self.headers = {**DEFAULT_HEADERS, **options.headers}
        self.timeout_s = options.timeout_ms / 1000.0

    def handle(self, history: HistoryRecord) -> bool:
        key_id = history.resolve_key_id()
        if history.operation in {"create", "update"}:
            document = index_document(history.record_id, key_id, history.data)
            result = self.create_or_update_data(key_id, ENTITY, history.record_id, document)
        elif history.operation == "delete":
            result = self.delete_data(key_id, ENTITY, history.record_id)
        else:
            raise WrongOperationError()

        handled = result in HANDLED_RESULTS or (history.operation == "delete" and result == "not_found")
        self.logger.info(
            "afterhandler_handling_result",
            extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "handling_result": result, "handled": handled}},
        )
        return handled

    def reindex_reset(self, key_id: int | str, options: dict[str, Any] | None = None) -> bool:
        if self._skip_inactive("reindex_reset"):
            return True
        self.logger.info("afterhandler_reindex_reset", extra={"extra_fields": {"afterhandler_type": self.afterhandler_type, "key_id": str(key_id)}})
        drop_index_result = self.drop_index(key_id)
        create_index_result = self.create_index(key_id, options)
        self.logger.info(
            "afterhandler_reindex_result",
            extra={
                "extra_fields": {
                    "afterhandler_type": self.afterhandler_type,
                    "key_id": str(key_id),
                    "drop_index_result": drop_index_result,
                    "create_index_result": create_index_result,
                }
            },
        )
        return True

    def reindex_add(self, record: RegistryRecord) -> bool:
        if self._skip_inactive("reindex_add"):
            return True
        document = index_document(record.id, record.key_id, record.data)
        result = self.create_or_update_data(record.key_id, ENTITY, record.id, document)
        return result in HANDLED_RESULTS

    def get_index_count(self, key_id: int | str) -> Any | None:
        if not self.is_active:
            self.logger.info("afterhandler_get_index_count_not_active", extra={"extra_fields": {"afterhandler_type": self.afterhandler_type}})
            raise AfterhandlerConfigError("Search index afterhandler is not active.")
        if "get_index_count" not in self.api_methods:
            raise AfterhandlerConfigError("Search index count method is not defined.")
        try:
            return self._send("get_index_count", key_id)
        except HTTPRequestError as exc:
            self.logger.warning("search_index_get_index_count_failed", extra={"extra_fields": {"key_id": str(key_id), **exc.to_diagnostic()}})
            return None

    def create_or_update_data(self, key_id: int | str | None, entity: str, id: str, data: dict[str, Any]) -> str | None:
        data_id = external_data_id(entity, id)
        try:
            response = self._send("create_or_update_data", key_id, data_id, body=data)
        except HTTPRequestError as exc:
            message = _error_reason(exc.response_data) or str(exc) or DEFAULT_REQUEST_ERROR
            self._log_request_error("search_index_upsert_failed", message, id, "create_or_update_data", key_id, data_id)
            raise SearchIndexError(message) from exc

        self.logger.info("search_index_upsert_response", extra={"extra_fields": {"record_id": id, "response": response}})
        if isinstance(response, dict) and response.get("error"):
            message = _error_reason(response) or DEFAULT_REQUEST_ERROR
            self._log_request_error("search_index_upsert_failed", message, id, "create_or_update_data", key_id, data_id)
            raise SearchIndexError(message)
        return response.get("result") if isinstance(response, dict) else None

    def delete_data(self, key_id: int | str | None, entity: str, id: str) -> str | None:
        data_id = external_data_id(entity, id)
        try:
            response = self._send("delete_data", key_id, data_id)
        except HTTPRequestError as exc:
            if exc.status_code == 404:
                return "not_found"
            self.logger.warning("search_index_delete_failed", extra={"extra_fields": {"record_id": id, **exc.to_diagnostic()}})
            return None

        self.logger.info("search_index_delete_response", extra={"extra_fields": {"record_id": id, "response": response}})
        return response.get("result") if isinstance(response, dict) else None

    def drop_index(self, key_id: int | str) -> Any | None:
        try:
            response = self._send("drop_index", key_id)
        except HTTPRequestError as exc:
            self.logger.warning("search_index_drop_index_failed", extra={"extra_fields": {"key_id": str(key_id), **exc.to_diagnostic()}})
            return None
        self.logger.info("search_index_drop_index_response", extra={"extra_fields": {"key_id": str(key_id), "response": response}})
        if not isinstance(response, dict):
            return None
        return response.get("acknowledged") or response.get("result") or response.get("error")

    def create_index(self, key_id: int | str, options: dict[str, Any] | None = None) -> Any | None:
        body = {**(options or {}), "mappings": self.key_mappings(key_id)}
        try:
            response = self._send("create_index", key_id, body=body)
        except HTTPRequestError as exc:
            self.logger.warning("search_index_create_index_failed", extra={"extra_fields": {"key_id": str(key_id), **exc.to_diagnostic()}})
            return None
        self.logger.info("search_index_create_index_response", extra={"extra_fields": {"key_id": str(key_id), "response": response}})
        if not isinstance(response, dict):
            return None
        return response.get("acknowledged") or response.get("result") or response.get("error")

    def key_mappings(self, key_id: int | str) -> dict[str, Any]:
        if self.registry is None:
            return {}
        key = self.registry.get_key(key_id)
        if key is None:
            return {}
        return schema_to_mappings(key.schema_)

    def _url(self, operation: str, key_id: int | str | None, data_id: str | None = None) -> str:
        suffix = self.api_methods[operation].url
        if data_id is not None:
            suffix = suffix.replace(URL_DATA_ID_KEY, data_id)
        return f"{self.api_url}{suffix}".replace(URL_INDEX_ID_KEY, str(key_id))

    def _send(self, operation: str, key_id: int | str | None, data_id: str | None = None, body: Any = None) -> Any:
        return send(
            self.api_methods[operation].method,
            self._url(operation, key_id, data_id),
            headers=self.headers,
            body=body,
            timeout_s=self.timeout_s,
        )

    def _log_request_error(
        self, event: str, message: str, record_id: str, operation: str, key_id: int | str | None, data_id: str
    ) -> None:
        self.logger.warning(
            event,
            extra={
                "extra_fields": {
                    "error": message,
                    "record_id": record_id,
                    "request": {
                        "method": self.api_methods[operation].method,
                        "url": self._url(operation, key_id, data_id),
                        "headers": redact_headers(self.headers),
                    },
                }
            },
        )
