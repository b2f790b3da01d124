from __future__ import annotations

from typing import Any


class HTTPRequestError(RuntimeError):
    """Raised by ``send`` for transport failures and non-2xx responses."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        method: str,
        status_code: int | None = None,
        status_text: str | None = None,
        code: str | None = None,
        response_data: Any = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.method = method
        self.status_code = status_code
        self.status_text = status_text
        self.code = code
        self.response_data = response_data

    def to_diagnostic(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "code": self.code,
            "status": self.status_code,
            "status_text": self.status_text,
            "response_data": self.response_data,
            "url": self.url,
            "method": self.method,
        }
