from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

Operation = Literal["create", "update", "delete"]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HistoryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    record_id: str
    key_id: int | str | None = None
    created_by: str
    operation: Operation
    data: dict[str, Any] = Field(default_factory=dict)
    created_at_iso: str = Field(default_factory=now_iso)

    def resolve_key_id(self) -> int | str | None:
        if self.key_id is not None:
            return self.key_id
        return self.data.get("keyId", self.data.get("key_id"))
