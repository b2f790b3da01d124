from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from afterhandler.core.history.schemas import HistoryRecord, now_iso

AfterhandlerType = Literal["ledger", "search-index", "deep-link"]

LEDGER: AfterhandlerType = "ledger"
SEARCH_INDEX: AfterhandlerType = "search-index"
DEEP_LINK: AfterhandlerType = "deep-link"
AFTERHANDLER_TYPES: tuple[AfterhandlerType, ...] = (LEDGER, SEARCH_INDEX, DEEP_LINK)


class AfterhandlerQueueEntry(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: AfterhandlerType
    history_id: str
    synced: bool = False
    has_error: bool = False
    error_message: str | None = None
    created_by: str
    updated_by: str
    created_at_iso: str = Field(default_factory=now_iso)
    synced_at_iso: str | None = None
    claimed_by: str | None = None
    claimed_until_iso: str | None = None


@dataclass(frozen=True)
class QueuedHistory:
    entry: AfterhandlerQueueEntry
    history: HistoryRecord

    @property
    def id(self) -> str:
        return self.entry.id


class KeySyncStatus(BaseModel):
    key_id: str
    type: AfterhandlerType
    queue_length: int = 0
    total: int = 0
    status_message: str | None = None
    errored_record_id: str | None = None
