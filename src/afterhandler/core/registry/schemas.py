from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RegistryKey(BaseModel):
    id: int | str
    name: str | None = None
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @property
    def afterhandlers(self) -> list[str]:
        raw = self.meta.get("afterhandlers") or []
        if isinstance(raw, str):
            return [raw]
        return [str(item) for item in raw if item]


class RegistryRecord(BaseModel):
    id: str
    key_id: int | str
    data: dict[str, Any] = Field(default_factory=dict)
    created_by: str | None = None
    updated_by: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
