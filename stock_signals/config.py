"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``STOCK_SIGNALS_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

API keys are never read from TOML. The generative backend key comes from the
``GEMINI_API_KEY`` environment variable (or ``.env``) at client construction.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite database connection settings."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/stock_signals.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000


class ProviderConfig(BaseModel):
    """Market data provider (VNDirect finfo API) settings."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api-finfo.vndirect.com.vn/v4"
    timeout_seconds: float = 10.0
    price_history_size: int = 270
    analyst_lookback_days: int = 180
    use_fixture: bool = False


class BackendConfig(BaseModel):
    """Generative backend (Gemini REST API) settings."""

    model_config = ConfigDict(frozen=True)

    model: str = "gemini-2.5-flash-lite"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    api_key_env: str = "GEMINI_API_KEY"
    temperature: float = 0.3
    max_output_tokens: int = 2048
    top_k: int = 40
    top_p: float = 0.95
    timeout_seconds: float = 60.0

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"temperature must be in [0.0, 2.0], got {v}.")
        return v


class IndicatorConfig(BaseModel):
    """Technical indicator periods used when building snapshots."""

    model_config = ConfigDict(frozen=True)

    ma_short: int = 10
    ma_long: int = 30
    bollinger_period: int = 20
    bollinger_multiplier: float = 2.0
    volume_avg_period: int = 10
    momentum_lookbacks: list[int] = [5, 10]
    week52_bars: int = 250

    @model_validator(mode="after")
    def validate_periods(self) -> "IndicatorConfig":
        if self.ma_short >= self.ma_long:
            raise ValueError(
                f"ma_short ({self.ma_short}) must be < ma_long ({self.ma_long})."
            )
        if self.bollinger_multiplier < 0:
            raise ValueError("bollinger_multiplier must be >= 0.")
        return self


class ScreeningConfig(BaseModel):
    """Pre-filter thresholds applied before any backend call."""

    model_config = ConfigDict(frozen=True)

    require_golden_cross: bool = True
    pe_max: float = 25.0
    pb_max: float = 3.0
    roe_min_pct: float = 10.0
    min_fundamental_score: int = 2
    min_sessions: int = 30


class OrchestratorConfig(BaseModel):
    """Batch analysis concurrency and persistence thresholds."""

    model_config = ConfigDict(frozen=True)

    max_workers: int = 4
    symbol_timeout_seconds: float = 90.0
    min_buy_confidence: int = 65

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_workers must be >= 1, got {v}.")
        return v


class RecommendationConfig(BaseModel):
    """Recommendation tracking settings."""

    model_config = ConfigDict(frozen=True)

    default_cut_loss_ratio: float = 0.965
    refresh_workers: int = 4
    export_dir: str = "data/outputs/recommendations"


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/stock_signals.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration — the single source of truth.

    All pipeline stages and CLI commands receive an ``AppConfig`` instance.
    It is constructed by ``load_config()`` which merges TOML + .env.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    provider: ProviderConfig = ProviderConfig()
    backend: BackendConfig = BackendConfig()
    indicators: IndicatorConfig = IndicatorConfig()
    screening: ScreeningConfig = ScreeningConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    recommendations: RecommendationConfig = RecommendationConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If the specified ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    if config_path is None:
        config_path = root / "config" / "default.toml"

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            local_raw: dict[str, Any] = tomllib.load(f)
        raw = _deep_merge(raw, local_raw)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply STOCK_SIGNALS_* env vars to the raw config dict.

    Supported overrides:
      STOCK_SIGNALS_DB_PATH       → raw["database"]["db_path"]
      STOCK_SIGNALS_LOG_LEVEL     → raw["logging"]["level"]
      STOCK_SIGNALS_GEMINI_MODEL  → raw["backend"]["model"]
      STOCK_SIGNALS_USE_FIXTURE   → raw["provider"]["use_fixture"]
      STOCK_SIGNALS_DEBUG         → raw["debug"]
    """
    if db_path := os.environ.get("STOCK_SIGNALS_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if log_level := os.environ.get("STOCK_SIGNALS_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if model := os.environ.get("STOCK_SIGNALS_GEMINI_MODEL"):
        raw.setdefault("backend", {})["model"] = model

    if use_fixture := os.environ.get("STOCK_SIGNALS_USE_FIXTURE"):
        raw.setdefault("provider", {})["use_fixture"] = (
            use_fixture.lower() in ("1", "true", "yes")
        )

    if debug := os.environ.get("STOCK_SIGNALS_DEBUG"):
        raw["debug"] = debug.lower() in ("1", "true", "yes")

    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        provider=ProviderConfig(**raw.get("provider", {})),
        backend=BackendConfig(**raw.get("backend", {})),
        indicators=IndicatorConfig(**raw.get("indicators", {})),
        screening=ScreeningConfig(**raw.get("screening", {})),
        orchestrator=OrchestratorConfig(**raw.get("orchestrator", {})),
        recommendations=RecommendationConfig(**raw.get("recommendations", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
