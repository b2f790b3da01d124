from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from afterhandler.core.queue.schemas import AfterhandlerType


class WorkerSettings(BaseModel):
    is_active: bool = False
    handling_timeout_ms: int = Field(1000, ge=0)
    waiting_timeout_ms: int = Field(20000, ge=0)
    keys: list[int | str] = Field(default_factory=list)
    provider: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    def is_key_enabled(self, key_id: int | str | None) -> bool:
        if key_id is None:
            return False
        return str(key_id) in {str(key) for key in self.keys}


class WorkersSettings(BaseModel):
    ledger: WorkerSettings = Field(default_factory=WorkerSettings)
    search_index: WorkerSettings = Field(default_factory=WorkerSettings)
    deep_link: WorkerSettings = Field(default_factory=WorkerSettings)

    def for_type(self, type: AfterhandlerType) -> WorkerSettings:
        return getattr(self, type.replace("-", "_"))


class AfterhandlerSettings(BaseModel):
    state_dir: str | None = None
    workers: WorkersSettings = Field(default_factory=WorkersSettings)
