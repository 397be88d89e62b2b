"""
Settings loading for the link pipeline.

Layers, lowest precedence first: dataclass defaults, a YAML/JSON run
config file, then LINKSCOUT_* environment variables.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from harvest.config import FetchConfig, default_max_concurrent
from links.scoring import ScoringConfig


PROJECT_ROOT = Path(__file__).parent.parent
DEFAULT_DB_PATH = PROJECT_ROOT / "links.db"

PRODUCTION_DB_POOL_SIZE = 100
DEVELOPMENT_DB_POOL_SIZE = 20


def is_production(env: dict | None = None) -> bool:
    env = os.environ if env is None else env
    return env.get("LINKSCOUT_ENV", "").lower() == "production"


@dataclass
class DatabaseConfig:
    path: str = str(DEFAULT_DB_PATH)
    pool_size: int = DEVELOPMENT_DB_POOL_SIZE
    timeout: float = 30.0


@dataclass
class SearchConfig:
    page_size: int = 100


@dataclass
class RateLimitConfig:
    window_seconds: float = 60.0
    max_requests: int = 1000


@dataclass
class Settings:
    """Everything the pipeline and the HTTP adapter read at startup."""
    fetch: FetchConfig = field(default_factory=FetchConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    log_level: str = "INFO"


def load_run_config(path: str) -> dict:
    """Load a run configuration from JSON or YAML."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Run config not found: {path}")

    # Handle empty files (e.g., /dev/null) gracefully
    content = p.read_text(encoding="utf-8").strip()
    if not content:
        return {}

    if p.suffix.lower() in (".yaml", ".yml"):
        result = yaml.safe_load(content)
    else:
        result = json.loads(content)
    if result and not isinstance(result, dict):
        raise ValueError(f"Run config must be a mapping: {path}")
    return result or {}


def _apply_section(target, data: dict | None) -> None:
    for key, value in (data or {}).items():
        if hasattr(target, key) and value is not None:
            setattr(target, key, value)


# env var -> (section, attribute, type)
ENV_OVERRIDES = {
    "LINKSCOUT_DB_PATH": ("database", "path", str),
    "LINKSCOUT_DB_POOL_SIZE": ("database", "pool_size", int),
    "LINKSCOUT_DB_TIMEOUT": ("database", "timeout", float),
    "LINKSCOUT_MAX_CONCURRENT": ("fetch", "max_concurrent", int),
    "LINKSCOUT_HTTP_TIMEOUT": ("fetch", "timeout", float),
    "LINKSCOUT_CONNECT_TIMEOUT": ("fetch", "connect_timeout", float),
    "LINKSCOUT_NAVIGATION_TIMEOUT_MS": ("fetch", "navigation_timeout_ms", int),
    "LINKSCOUT_PAGE_SIZE": ("search", "page_size", int),
    "LINKSCOUT_RATE_LIMIT_WINDOW": ("rate_limit", "window_seconds", float),
    "LINKSCOUT_RATE_LIMIT_MAX": ("rate_limit", "max_requests", int),
}


def load_settings(path: str | None = None, env: dict | None = None) -> Settings:
    """
    Build Settings from defaults, an optional run config file and the environment.

    Args:
        path: YAML/JSON run config (falls back to LINKSCOUT_CONFIG)
        env: environment mapping (defaults to os.environ)
    """
    env = os.environ if env is None else env
    settings = Settings()

    # Environment-scaled defaults
    settings.fetch.max_concurrent = default_max_concurrent(env)
    if is_production(env):
        settings.database.pool_size = PRODUCTION_DB_POOL_SIZE

    path = path or env.get("LINKSCOUT_CONFIG")
    cfg = load_run_config(path) if path else {}

    if "fetch" in cfg:
        _apply_section(settings.fetch, cfg["fetch"])
    if "scoring" in cfg:
        settings.scoring = ScoringConfig.from_dict(cfg["scoring"])
    _apply_section(settings.database, cfg.get("database"))
    _apply_section(settings.search, cfg.get("search"))
    _apply_section(settings.rate_limit, cfg.get("rate_limit"))
    if cfg.get("log_level"):
        settings.log_level = str(cfg["log_level"])

    for var, (section, attr, cast) in ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw in (None, ""):
            continue
        try:
            value = cast(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from exc
        setattr(getattr(settings, section), attr, value)

    if env.get("LINKSCOUT_LOG_LEVEL"):
        settings.log_level = env["LINKSCOUT_LOG_LEVEL"]

    return settings
