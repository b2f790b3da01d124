from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any

import httpx

from afterhandler.core.logging.context import correlation_id_var

from .errors import HTTPRequestError

_DEFAULT_TIMEOUT_S = 15.0
_DEFAULT_CONNECT_TIMEOUT_S = 5.0
_DEFAULT_USER_AGENT = "afterhandler/1.0"
_TRACE_HEADER = "x-trace-id"

_client: httpx.Client | None = None
_client_lock = threading.Lock()

logger = logging.getLogger(__name__)


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _build_timeout(total_s: float | None = None) -> httpx.Timeout:
    connect_s = max(0.1, _get_float_env("AFTERHANDLER_HTTP_CONNECT_TIMEOUT_S", _DEFAULT_CONNECT_TIMEOUT_S))
    read_total = max(0.1, total_s if total_s is not None else _get_float_env("AFTERHANDLER_HTTP_TIMEOUT_S", _DEFAULT_TIMEOUT_S))
    return httpx.Timeout(read_total, connect=min(connect_s, read_total))


def get_http_client() -> httpx.Client:
    global _client
    if _client is not None:
        return _client

    with _client_lock:
        if _client is None:
            user_agent = os.getenv("AFTERHANDLER_HTTP_USER_AGENT", _DEFAULT_USER_AGENT)
            _client = httpx.Client(timeout=_build_timeout(), headers={"User-Agent": user_agent})
    return _client


def parse_body(raw: str) -> Any:
    if not raw:
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def send(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    body: Any = None,
    timeout_s: float | None = None,
) -> Any:
    """Send one request and return its parsed body.

    ``body`` is sent as-is when it is ``str`` or ``bytes`` and JSON-encoded
    otherwise. Transport failures and non-2xx responses are logged as a
    normalized diagnostic and re-raised as :class:`HTTPRequestError`.
    """
    merged_headers = dict(headers or {})
    trace_id = correlation_id_var.get()
    if trace_id and _TRACE_HEADER not in merged_headers:
        merged_headers[_TRACE_HEADER] = trace_id

    request_kwargs: dict[str, Any] = {}
    if timeout_s is not None:
        request_kwargs["timeout"] = _build_timeout(timeout_s)
    if isinstance(body, (str, bytes)):
        request_kwargs["content"] = body
    elif body is not None:
        request_kwargs["json"] = body

    client = get_http_client()
    method = method.upper()
    try:
        response = client.request(
            method,
            url,
            headers=merged_headers or None,
            **request_kwargs,
        )
    except httpx.HTTPError as exc:
        error = HTTPRequestError(
            f"HTTP request error for {method} {url}: {exc.__class__.__name__}",
            url=url,
            method=method,
            code=exc.__class__.__name__,
        )
        _log_failure(error)
        raise error from exc

    parsed = parse_body(response.text)
    if not response.is_success:
        error = HTTPRequestError(
            f"Request failed with status code {response.status_code}",
            url=url,
            method=method,
            status_code=response.status_code,
            status_text=response.reason_phrase,
            code=f"HTTP_{response.status_code}",
            response_data=parsed,
        )
        _log_failure(error)
        raise error

    return parsed


def _log_failure(error: HTTPRequestError) -> None:
    logger.warning("http_request_failed", extra={"extra_fields": error.to_diagnostic()})
