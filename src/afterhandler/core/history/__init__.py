from .schemas import HistoryRecord, Operation
from .store import HistoryStore

__all__ = ["HistoryRecord", "HistoryStore", "Operation"]
