from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class ApiMethod(BaseModel):
    method: str
    url: str


class SyncProvider(Protocol):
    """One external system holding a representation of registry records.

    Every call returns the parsed response body, or ``None`` when the
    transport failed. Failures are logged by the provider, never raised.
    """

    name: str

    def create_data(self, entity: str, id: str, user_id: str, data: dict[str, Any]) -> Any | None: ...

    def update_data(self, entity: str, id: str, user_id: str, data: dict[str, Any]) -> Any | None: ...

    def delete_data(self, entity: str, id: str, user_id: str) -> Any | None: ...

    def get_data(self, entity: str, id: str) -> Any | None: ...


def external_data_id(entity: str, id: str) -> str:
    return f"{entity}-{id}"


def external_type_name(entity: str) -> str:
    return entity


def merge_api_methods(
    defaults: dict[str, ApiMethod], configured: dict[str, ApiMethod | dict[str, str]] | None
) -> dict[str, ApiMethod]:
    merged = dict(defaults)
    for operation, value in (configured or {}).items():
        merged[operation] = value if isinstance(value, ApiMethod) else ApiMethod.model_validate(value)
    return merged
