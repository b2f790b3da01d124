from .context import get_log_context, log_context, reset_context, set_context
from .setup import configure_logging, log_file_path

__all__ = ["configure_logging", "log_file_path", "get_log_context", "set_context", "reset_context", "log_context"]
