from __future__ import annotations

from typing import Protocol

from .schemas import RegistryKey, RegistryRecord


class RegistryReader(Protocol):
    """Read side of the authoritative record store used by reindexing."""

    def get_key(self, key_id: int | str) -> RegistryKey | None: ...

    def list_records(self, key_id: int | str, offset: int, limit: int) -> list[RegistryRecord]: ...
