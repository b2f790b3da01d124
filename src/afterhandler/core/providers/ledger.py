from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from afterhandler.core.errors import AfterhandlerConfigError
from afterhandler.core.http.client import send
from afterhandler.core.http.errors import HTTPRequestError

from .base import DEFAULT_HEADERS, ApiMethod, external_data_id, external_type_name, merge_api_methods

URL_DATA_ID_KEY = "{id}"
REVOKE_REASON = "deleted"
DEFAULT_API_METHODS: dict[str, ApiMethod] = {
    "get_data": ApiMethod(method="GET", url="/api/documents/{id}"),
    "create_data": ApiMethod(method="POST", url="/api/documents"),
    "update_data": ApiMethod(method="PUT", url="/api/documents/{id}"),
    "delete_data": ApiMethod(method="POST", url="/api/documents/{id}/revoke"),
}


class LedgerOptions(BaseModel):
    api_url: str
    api_methods: dict[str, ApiMethod] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = Field(10000, gt=0)


class LedgerProvider:
    """Client for the permissioned-ledger document API."""

    name = "ledger"

    def __init__(self, options: LedgerOptions | dict[str, Any], logger: logging.Logger | None = None) -> None:
        try:
            parsed = options if isinstance(options, LedgerOptions) else LedgerOptions.model_validate(options)
        except ValidationError as exc:
            raise AfterhandlerConfigError(f"invalid ledger provider options: {exc}") from exc
        self.api_url = parsed.api_url.rstrip("/")
        self.api_methods = merge_api_methods(DEFAULT_API_METHODS, parsed.api_methods)
        self.headers = {**DEFAULT_HEADERS, **parsed.headers}
        self.timeout_s = parsed.timeout_ms / 1000.0
        self.logger = logger or logging.getLogger(__name__)

    def create_data(self, entity: str, id: str, user_id: str, data: dict[str, Any]) -> Any | None:
        data_id = external_data_id(entity, id)
        body = {"id": data_id, "name": external_type_name(entity), "issuerId": user_id, "documentData": data}
        return self._request("create_data", data_id, id, body)

    def update_data(self, entity: str, id: str, user_id: str, data: dict[str, Any]) -> Any | None:
        data_id = external_data_id(entity, id)
        body = {"id": data_id, "name": external_type_name(entity), "issuerId": user_id, "documentData": data}
        return self._request("update_data", data_id, id, body)

    def delete_data(self, entity: str, id: str, user_id: str) -> Any | None:
        data_id = external_data_id(entity, id)
        return self._request("delete_data", data_id, id, {"id": data_id, "revokeReason": REVOKE_REASON})

    def get_data(self, entity: str, id: str) -> Any | None:
        data_id = external_data_id(entity, id)
        return self._request("get_data", data_id, id, None)

    def _request(self, operation: str, data_id: str, record_id: str, body: dict[str, Any] | None) -> Any | None:
        api_method = self.api_methods[operation]
        url = f"{self.api_url}{api_method.url.replace(URL_DATA_ID_KEY, data_id)}"
        try:
            response = send(api_method.method, url, headers=self.headers, body=body, timeout_s=self.timeout_s)
        except HTTPRequestError as exc:
            self.logger.warning(
                "ledger_request_failed",
                extra={"extra_fields": {"operation": operation, "record_id": record_id, **exc.to_diagnostic()}},
            )
            return None

        self.logger.info(
            "ledger_response",
            extra={"extra_fields": {"operation": operation, "record_id": record_id, "response": response}},
        )
        return response
