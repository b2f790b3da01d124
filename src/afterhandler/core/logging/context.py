from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
worker_type_var: ContextVar[str | None] = ContextVar("worker_type", default=None)
queue_entry_id_var: ContextVar[str | None] = ContextVar("queue_entry_id", default=None)
history_id_var: ContextVar[str | None] = ContextVar("history_id", default=None)
record_id_var: ContextVar[str | None] = ContextVar("record_id", default=None)
key_id_var: ContextVar[str | None] = ContextVar("key_id", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "correlation_id": correlation_id_var,
    "worker_type": worker_type_var,
    "queue_entry_id": queue_entry_id_var,
    "history_id": history_id_var,
    "record_id": record_id_var,
    "key_id": key_id_var,
}


def set_context(**kwargs: str | None) -> dict[str, Token[str | None]]:
    tokens: dict[str, Token[str | None]] = {}
    for key, value in kwargs.items():
        var = _CONTEXT_VARS.get(key)
        if var is None:
            continue
        tokens[key] = var.set(None if value is None else str(value))
    return tokens


def reset_context(tokens: dict[str, Token[str | None]]) -> None:
    for key, token in tokens.items():
        var = _CONTEXT_VARS.get(key)
        if var is not None:
            var.reset(token)


@contextmanager
def log_context(
    correlation_id: str | None = None,
    worker_type: str | None = None,
    queue_entry_id: str | None = None,
    history_id: str | None = None,
    record_id: str | None = None,
    key_id: str | int | None = None,
) -> Iterator[None]:
    tokens = set_context(
        correlation_id=correlation_id,
        worker_type=worker_type,
        queue_entry_id=queue_entry_id,
        history_id=history_id,
        record_id=record_id,
        key_id=None if key_id is None else str(key_id),
    )
    try:
        yield
    finally:
        reset_context(tokens)


def get_log_context() -> dict[str, str]:
    values = {name: var.get() for name, var in _CONTEXT_VARS.items()}
    return {key: value for key, value in values.items() if value is not None}
