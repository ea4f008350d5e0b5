"""
Tests for stock_signals/config.py.

What we test
------------
  - The committed default.toml loads and matches the model defaults.
  - local.toml next to the config file is deep-merged over it.
  - STOCK_SIGNALS_* environment variables override TOML values.
  - Validators reject impossible settings.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from stock_signals.config import (
    AppConfig,
    BackendConfig,
    IndicatorConfig,
    LoggingConfig,
    OrchestratorConfig,
    load_config,
)

_ENV_VARS = (
    "STOCK_SIGNALS_DB_PATH",
    "STOCK_SIGNALS_LOG_LEVEL",
    "STOCK_SIGNALS_GEMINI_MODEL",
    "STOCK_SIGNALS_USE_FIXTURE",
    "STOCK_SIGNALS_DEBUG",
)

DEFAULT_TOML = Path(__file__).resolve().parents[2] / "config" / "default.toml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    def test_default_toml_matches_models(self):
        assert load_config(DEFAULT_TOML) == AppConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_local_override_merged(self, tmp_path):
        (tmp_path / "base.toml").write_text(
            "[screening]\npe_max = 20.0\nmin_sessions = 40\n", encoding="utf-8"
        )
        (tmp_path / "local.toml").write_text("[screening]\npe_max = 30.0\n", encoding="utf-8")
        config = load_config(tmp_path / "base.toml")
        assert config.screening.pe_max == 30.0
        assert config.screening.min_sessions == 40

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "base.toml"
        path.write_text('[database]\ndb_path = "from_toml.db"\n', encoding="utf-8")
        monkeypatch.setenv("STOCK_SIGNALS_DB_PATH", "from_env.db")
        monkeypatch.setenv("STOCK_SIGNALS_LOG_LEVEL", "debug")
        monkeypatch.setenv("STOCK_SIGNALS_USE_FIXTURE", "true")
        monkeypatch.setenv("STOCK_SIGNALS_GEMINI_MODEL", "gemini-2.0-flash")

        config = load_config(path)
        assert config.database.db_path == "from_env.db"
        assert config.logging.level == "DEBUG"
        assert config.provider.use_fixture is True
        assert config.backend.model == "gemini-2.0-flash"

    def test_project_debug_flag(self, tmp_path):
        path = tmp_path / "base.toml"
        path.write_text("[project]\ndebug = true\n", encoding="utf-8")
        assert load_config(path).debug is True


class TestValidators:
    def test_ma_order(self):
        with pytest.raises(ValidationError):
            IndicatorConfig(ma_short=30, ma_long=10)

    def test_temperature_range(self):
        with pytest.raises(ValidationError):
            BackendConfig(temperature=3.0)

    def test_workers(self):
        with pytest.raises(ValidationError):
            OrchestratorConfig(max_workers=0)

    def test_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_frozen(self):
        with pytest.raises(ValidationError):
            AppConfig().debug = True
