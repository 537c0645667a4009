"""Application configuration: loads from config/config.yaml with env overrides."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel


_PROJECT_ROOT = Path(__file__).parent.parent


class ConfigurationError(RuntimeError):
    """A required secret or endpoint is missing."""


class DatabaseConfig(BaseModel):
    url: str = ""


class AIGatewayConfig(BaseModel):
    """OpenAI-compatible chat-completion gateway."""
    api_key: str = ""
    base_url: str = "https://ai.gateway.lovable.dev/v1"
    model: str = "google/gemini-3-flash-preview"
    timeout: float = 120.0
    # Each pipeline step calls the gateway exactly once
    max_retries: int = 0


class ScraperConfig(BaseModel):
    api_key: str = ""
    base_url: str = "https://api.firecrawl.dev/v1"
    timeout: float = 60.0


class BlogConfig(BaseModel):
    model: str = "google/gemini-2.5-flash"
    max_source_chars: int = 6000
    default_source_url: str = "https://www.tickertape.in/market-mood-index"


class Settings(BaseModel):
    project_root: Path = _PROJECT_ROOT
    database: DatabaseConfig = DatabaseConfig()
    ai_gateway: AIGatewayConfig = AIGatewayConfig()
    scraper: ScraperConfig = ScraperConfig()
    blog: BlogConfig = BlogConfig()
    debug: bool = False


def _default_db_url(yaml_data: dict) -> str:
    db_path = yaml_data.get("database", {}).get("path", "data/quantmentor.db")
    abs_db_path = (_PROJECT_ROOT / db_path).resolve()
    abs_db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{abs_db_path}"


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from a YAML file (if it exists) + environment variables.

    Environment wins over YAML for every secret and for the database URL.
    """
    if config_path is None:
        config_path = _PROJECT_ROOT / "config" / "config.yaml"
    if environ is None:
        environ = os.environ

    yaml_data: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

    # Database (env -> yaml url -> local SQLite file)
    db_url = environ.get("DATABASE_URL") or yaml_data.get("database", {}).get("url")
    if not db_url:
        db_url = _default_db_url(yaml_data)

    gw_cfg = yaml_data.get("ai_gateway", {})
    scraper_cfg = yaml_data.get("scraper", {})
    blog_cfg = yaml_data.get("blog", {})

    return Settings(
        database=DatabaseConfig(url=db_url),
        ai_gateway=AIGatewayConfig(
            api_key=environ.get("AI_GATEWAY_API_KEY", gw_cfg.get("api_key", "")),
            base_url=gw_cfg.get("base_url", "https://ai.gateway.lovable.dev/v1"),
            model=gw_cfg.get("model", "google/gemini-3-flash-preview"),
            timeout=gw_cfg.get("timeout", 120.0),
            max_retries=gw_cfg.get("max_retries", 0),
        ),
        scraper=ScraperConfig(
            api_key=environ.get("FIRECRAWL_API_KEY", scraper_cfg.get("api_key", "")),
            base_url=scraper_cfg.get("base_url", "https://api.firecrawl.dev/v1"),
            timeout=scraper_cfg.get("timeout", 60.0),
        ),
        blog=BlogConfig(
            model=blog_cfg.get("model", "google/gemini-2.5-flash"),
            max_source_chars=blog_cfg.get("max_source_chars", 6000),
            default_source_url=blog_cfg.get(
                "default_source_url", "https://www.tickertape.in/market-mood-index"
            ),
        ),
        debug=environ.get("DEBUG", "").lower() in ("1", "true"),
    )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return load_settings()
