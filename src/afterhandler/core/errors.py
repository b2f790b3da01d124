from __future__ import annotations


class AfterhandlerError(RuntimeError):
    """Base error for the afterhandler framework."""


class AfterhandlerConfigError(AfterhandlerError):
    """Invalid or incomplete configuration. Raised at construction time."""


class RecordValidationError(AfterhandlerError):
    """Record shape is unsuitable for a sync type."""


class WrongOperationError(AfterhandlerError):
    def __init__(self, message: str = "Wrong operation type.") -> None:
        super().__init__(message)


class DeepLinkRequestError(AfterhandlerError):
    """Deep-link service rejected the request (HTTP 400)."""


class SearchIndexError(AfterhandlerError):
    pass


class ReindexInProgressError(AfterhandlerError):
    pass
