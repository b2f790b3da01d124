from .base import ApiMethod, SyncProvider, external_data_id, external_type_name
from .factory import PROVIDERS, build_provider
from .ledger import LedgerOptions, LedgerProvider

__all__ = [
    "ApiMethod",
    "LedgerOptions",
    "LedgerProvider",
    "PROVIDERS",
    "SyncProvider",
    "build_provider",
    "external_data_id",
    "external_type_name",
]
