from .client import get_http_client, send
from .errors import HTTPRequestError

__all__ = ["get_http_client", "send", "HTTPRequestError"]
