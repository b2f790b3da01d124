from __future__ import annotations

import json
from pathlib import Path

from .schemas import HistoryRecord


class HistoryStore:
    """Append-only JSONL log of record mutations."""

    def __init__(self, state_dir: Path) -> None:
        self.file_path = Path(state_dir) / "history.jsonl"
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def _load_all(self) -> list[HistoryRecord]:
        if not self.file_path.exists():
            return []
        records: list[HistoryRecord] = []
        with self.file_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(HistoryRecord.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    continue
        return records

    def append(self, record: HistoryRecord) -> HistoryRecord:
        with self.file_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record.model_dump(mode="json"), ensure_ascii=False) + "\n")
        return record

    def get(self, history_id: str) -> HistoryRecord | None:
        for record in self._load_all():
            if record.id == history_id:
                return record
        return None

    def get_many(self, history_ids: set[str]) -> dict[str, HistoryRecord]:
        return {record.id: record for record in self._load_all() if record.id in history_ids}

    def list_by_record_id(self, record_id: str, limit: int = 50) -> list[HistoryRecord]:
        if limit <= 0:
            return []
        matches = [record for record in self._load_all() if record.record_id == record_id]
        return list(reversed(matches))[:limit]

    def list_by_key_id(self, key_id: int | str) -> list[HistoryRecord]:
        wanted = str(key_id)
        return [record for record in self._load_all() if str(record.resolve_key_id()) == wanted]
