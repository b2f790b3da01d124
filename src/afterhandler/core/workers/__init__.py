from .base import AfterhandlerWorker
from .deep_link import DeepLinkAfterhandlerWorker
from .ledger import LedgerAfterhandlerWorker
from .manager import WORKER_TYPES, Afterhandler, ReindexResult
from .search_index import SearchIndexAfterhandlerWorker

__all__ = [
    "WORKER_TYPES",
    "Afterhandler",
    "AfterhandlerWorker",
    "DeepLinkAfterhandlerWorker",
    "LedgerAfterhandlerWorker",
    "ReindexResult",
    "SearchIndexAfterhandlerWorker",
]
