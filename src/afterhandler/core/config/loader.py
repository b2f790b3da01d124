"""Configuration loader for the afterhandler workers."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from afterhandler.core.errors import AfterhandlerConfigError

from .schemas import AfterhandlerSettings

_DEF_PATH = Path(__file__).resolve().parent / "afterhandler.yaml"


def load_settings(path: str | Path | None = None) -> AfterhandlerSettings:
    """Load and validate configuration from a YAML file."""
    configured = path or os.getenv("AFTERHANDLER_CONFIG")
    cfg_path = Path(configured).expanduser() if configured else _DEF_PATH
    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise AfterhandlerConfigError(f"cannot read config {cfg_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise AfterhandlerConfigError(f"invalid YAML in {cfg_path}: {exc}") from exc
    try:
        return AfterhandlerSettings.model_validate(data)
    except ValidationError as exc:
        raise AfterhandlerConfigError(f"invalid config {cfg_path}: {exc}") from exc


def resolve_state_dir(settings: AfterhandlerSettings | None = None) -> Path:
    configured = os.getenv("AFTERHANDLER_STATE_DIR") or (settings.state_dir if settings else None)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".afterhandler"
