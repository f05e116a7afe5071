"""Configuration for the fetch engine.

Settings are read from ``config/scrapers.yaml`` into pydantic models, then a
small set of environment variables (optionally supplied through a ``.env``
file) is layered on top. The retailer registry lives in the same file under
``retailers:`` and is consumed read-only by the strategies.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import quote_plus, urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "scrapers.yaml"

TRUE_VALUES = {"1", "true", "yes", "on"}


class DomSelectors(BaseModel):
    """CSS selectors for DOM scraping: one container plus sub-selectors."""

    container: str
    name: str
    price: str
    original_price: str | None = None
    image: str | None = None
    link: str | None = None
    rating: str | None = None


class RetailerConfig(BaseModel):
    """Static description of one retailer."""

    key: str = ""
    name: str
    base_url: str
    search_url_template: str
    direct_api_url: str | None = None
    graphql_url: str | None = None
    harvested_url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    dom_selectors: DomSelectors | None = None
    enabled: bool = True

    @model_validator(mode="after")
    def validate_template(self) -> "RetailerConfig":
        if "{query}" not in self.search_url_template:
            raise ValueError(
                f"search_url_template for {self.name} must contain '{{query}}'"
            )
        if not urlparse(self.base_url).netloc:
            raise ValueError(f"base_url for {self.name} must be an absolute URL")
        return self

    @property
    def origin(self) -> str:
        parsed = urlparse(self.base_url)
        return f"{parsed.scheme}://{parsed.netloc}"

    def search_url(self, query: str) -> str:
        return self.search_url_template.format(query=quote_plus(query))


class CacheSettings(BaseModel):
    ttl_sec: float = Field(300, gt=0)
    max_entries: int = Field(100, ge=1)


class HttpSettings(BaseModel):
    timeout_sec: float = Field(15, gt=0)
    max_proxy_attempts: int = Field(3, ge=1)
    pool_limit: int = Field(100, ge=1)
    host_limit: int = Field(20, ge=1)


class BrowserSettings(BaseModel):
    engine: str = "chromium"
    headless: bool = True
    timeout_sec: float = Field(30, gt=0)
    max_contexts_per_engine: int = Field(3, ge=1)
    context_max_age_sec: float = Field(300, gt=0)
    cleanup_interval_sec: float = Field(60, gt=0)
    navigation_timeout_ms: int = 30000
    network_idle_timeout_ms: int = 10000
    navigation_retries: int = Field(2, ge=0)
    navigation_retry_delay_sec: tuple[float, float] = (1.0, 3.0)
    block_resources: bool = True
    blocked_resource_types: list[str] = Field(
        default_factory=lambda: ["image", "font", "media", "stylesheet"]
    )
    blocked_url_keywords: list[str] = Field(
        default_factory=lambda: ["analytics", "tracking"]
    )
    simulate_human: bool = True
    timezone_id: str = "Asia/Kolkata"
    launch_args: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_engine(self) -> "BrowserSettings":
        if self.engine not in ("chromium", "firefox", "webkit"):
            raise ValueError(f"Unsupported browser engine: {self.engine}")
        low, high = self.navigation_retry_delay_sec
        if low < 0 or high < low:
            raise ValueError("navigation_retry_delay_sec must be an ordered range")
        return self


class RetrySettings(BaseModel):
    retries: int = Field(2, ge=0)
    delay_sec: float = Field(1.0, ge=0)


class DebugSettings(BaseModel):
    enabled: bool = False
    output_dir: str = "outputs/debug"

    @property
    def output_path(self) -> Path:
        path = Path(self.output_dir)
        return path if path.is_absolute() else PROJECT_ROOT / path


class EnrichmentSettings(BaseModel):
    enabled: bool = False
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-4o-mini"
    api_key_env_var: str = "OPENROUTER_API_KEY"
    max_tokens: int = 400
    temperature: float = 0.4
    timeout_sec: float = 60
    retry_attempts: int = Field(3, ge=1)


class EngineSettings(BaseModel):
    """Top-level settings object handed to the engine factory."""

    max_concurrent_retailers: int = Field(3, ge=1)
    early_exit_threshold: int = Field(15, ge=1)
    fast_path_enabled: bool = True
    browser_path_enabled: bool = True
    worker_count: int = Field(0, ge=0)
    human_delay_range_sec: tuple[float, float] = (0.3, 1.2)
    proxies: list[str] = Field(default_factory=list)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    debug: DebugSettings = Field(default_factory=DebugSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    retailers: dict[str, RetailerConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_engine_settings(self) -> "EngineSettings":
        low, high = self.human_delay_range_sec
        if low < 0 or high < low:
            raise ValueError("human_delay_range_sec must be an ordered range")
        for key, retailer in self.retailers.items():
            retailer.key = key
        return self

    def enabled_retailers(self) -> list[str]:
        """Retailer keys in configuration order, skipping disabled entries."""
        return [key for key, cfg in self.retailers.items() if cfg.enabled]


def _flatten_yaml(data: Mapping[str, Any]) -> dict[str, Any]:
    """Lift the ``engine:`` section to the top level of the settings dict."""
    flattened = {key: value for key, value in data.items() if key != "engine"}
    flattened.update(data.get("engine") or {})
    return flattened


def apply_env_overrides(
    data: dict[str, Any], env: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Layer environment knobs over the YAML values.

    Args:
    ----
        data: Settings dictionary as loaded from YAML (flattened)
        env: Environment mapping, defaults to ``os.environ``

    Returns:
    -------
        The same dictionary with overrides applied

    """
    env = os.environ if env is None else env

    if "DEBUG_SCRAPING" in env:
        debug = dict(data.get("debug") or {})
        debug["enabled"] = env["DEBUG_SCRAPING"].strip().lower() in TRUE_VALUES
        data["debug"] = debug
    if env.get("SCRAPER_DEBUG_DIR"):
        debug = dict(data.get("debug") or {})
        debug["output_dir"] = env["SCRAPER_DEBUG_DIR"]
        data["debug"] = debug
    if env.get("SCRAPER_MAX_CONCURRENCY"):
        data["max_concurrent_retailers"] = int(env["SCRAPER_MAX_CONCURRENCY"])
    if env.get("SCRAPER_EARLY_EXIT_THRESHOLD"):
        data["early_exit_threshold"] = int(env["SCRAPER_EARLY_EXIT_THRESHOLD"])
    if env.get("SCRAPER_CACHE_TTL_SEC"):
        cache = dict(data.get("cache") or {})
        cache["ttl_sec"] = float(env["SCRAPER_CACHE_TTL_SEC"])
        data["cache"] = cache
    if env.get("SCRAPER_CACHE_MAX_ENTRIES"):
        cache = dict(data.get("cache") or {})
        cache["max_entries"] = int(env["SCRAPER_CACHE_MAX_ENTRIES"])
        data["cache"] = cache
    if env.get("SCRAPER_PROXIES"):
        data["proxies"] = [
            proxy.strip() for proxy in env["SCRAPER_PROXIES"].split(",") if proxy.strip()
        ]
    return data


def load_engine_settings(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Load engine settings from YAML and the environment.

    Relative paths are resolved against the project root, the same way the
    rest of the configuration files are located.

    Raises
    ------
        ConfigurationError: If the file is missing or fails validation

    """
    if env is None:
        load_dotenv(PROJECT_ROOT / ".env")
        env = os.environ

    path = Path(config_path or env.get("SCRAPER_CONFIG") or DEFAULT_CONFIG_PATH)
    if not path.is_absolute():
        path = PROJECT_ROOT / path

    logger.info(f"Loading scraper config from: {path}")
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError("Config file is not a valid dictionary.")
        data = apply_env_overrides(_flatten_yaml(raw), env)
        return EngineSettings(**data)
    except ValidationError as e:
        logger.error(f"Config validation error: {e}")
        raise ConfigurationError("Config validation failed.") from e
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigurationError(f"Error parsing config data: {e}") from e


_engine_settings: EngineSettings | None = None


def get_engine_settings(config_path: str | Path | None = None) -> EngineSettings:
    """Get the process-wide settings instance (loaded on first call)."""
    global _engine_settings

    if _engine_settings is None:
        _engine_settings = load_engine_settings(config_path)

    return _engine_settings
