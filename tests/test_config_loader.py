from __future__ import annotations

from pathlib import Path

import pytest

from afterhandler.core.config.loader import load_settings, resolve_state_dir
from afterhandler.core.config.schemas import AfterhandlerSettings
from afterhandler.core.errors import AfterhandlerConfigError


def test_load_settings_from_yaml(tmp_path) -> None:
    sample = tmp_path / "afterhandler.yaml"
    sample.write_text(
        "workers:\n"
        "  ledger:\n"
        "    is_active: true\n"
        "    handling_timeout_ms: 50\n"
        "    keys: [1, '2']\n"
        "    provider: ledger\n"
        "    options:\n"
        "      api_url: http://ledger.local\n",
        encoding="utf-8",
    )

    settings = load_settings(sample)

    assert isinstance(settings, AfterhandlerSettings)
    ledger = settings.workers.for_type("ledger")
    assert ledger.is_active is True
    assert ledger.handling_timeout_ms == 50
    assert ledger.waiting_timeout_ms == 20000
    assert ledger.is_key_enabled(2) is True
    assert ledger.is_key_enabled(3) is False
    assert settings.workers.for_type("search-index").is_active is False


def test_bundled_defaults_keep_every_worker_inactive() -> None:
    settings = load_settings()

    for worker in (settings.workers.ledger, settings.workers.search_index, settings.workers.deep_link):
        assert worker.is_active is False


def test_config_path_from_env(tmp_path, monkeypatch) -> None:
    sample = tmp_path / "env.yaml"
    sample.write_text("state_dir: /var/lib/afterhandler\n", encoding="utf-8")
    monkeypatch.setenv("AFTERHANDLER_CONFIG", str(sample))

    assert load_settings().state_dir == "/var/lib/afterhandler"


@pytest.mark.parametrize(
    "content",
    [
        "workers: [unclosed\n",
        "workers:\n  ledger:\n    handling_timeout_ms: -1\n",
    ],
)
def test_invalid_config_raises_config_error(tmp_path, content: str) -> None:
    sample = tmp_path / "bad.yaml"
    sample.write_text(content, encoding="utf-8")

    with pytest.raises(AfterhandlerConfigError):
        load_settings(sample)


def test_missing_config_file_raises_config_error(tmp_path) -> None:
    with pytest.raises(AfterhandlerConfigError):
        load_settings(tmp_path / "absent.yaml")


def test_resolve_state_dir_prefers_env(tmp_path, monkeypatch) -> None:
    settings = AfterhandlerSettings(state_dir=str(tmp_path / "from-config"))

    assert resolve_state_dir(settings) == tmp_path / "from-config"

    monkeypatch.setenv("AFTERHANDLER_STATE_DIR", str(tmp_path / "from-env"))
    assert resolve_state_dir(settings) == tmp_path / "from-env"

    monkeypatch.delenv("AFTERHANDLER_STATE_DIR")
    assert resolve_state_dir(None) == Path.home() / ".afterhandler"
