from __future__ import annotations

import logging
from typing import Any, Callable

from afterhandler.core.errors import AfterhandlerConfigError

from .base import SyncProvider
from .ledger import LedgerProvider

PROVIDERS: dict[str, Callable[..., SyncProvider]] = {
    LedgerProvider.name: LedgerProvider,
}


def build_provider(name: str | None, options: dict[str, Any], logger: logging.Logger | None = None) -> SyncProvider:
    if not name:
        raise AfterhandlerConfigError("provider name is not defined")
    factory = PROVIDERS.get(name)
    if factory is None:
        raise AfterhandlerConfigError(f"unknown provider: {name}")
    return factory(options, logger=logger)
