from .loader import load_settings, resolve_state_dir
from .schemas import AfterhandlerSettings, WorkerSettings, WorkersSettings

__all__ = ["AfterhandlerSettings", "WorkerSettings", "WorkersSettings", "load_settings", "resolve_state_dir"]
