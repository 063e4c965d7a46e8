"""Centralised settings for the SiteLens scraper.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Headless browser
    # ------------------------------------------------------------------
    browser_headless: bool = field(
        default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true")
    )
    browser_locale: str = field(
        default_factory=lambda: os.environ.get("BROWSER_LOCALE", "ja-JP")
    )
    browser_viewport_width: int = field(
        default_factory=lambda: int(os.environ.get("BROWSER_VIEWPORT_WIDTH", "1920"))
    )
    browser_viewport_height: int = field(
        default_factory=lambda: int(os.environ.get("BROWSER_VIEWPORT_HEIGHT", "1080"))
    )
    browser_user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "BROWSER_USER_AGENT",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        )
    )
    # Default operation / navigation timeout for every page, in seconds.
    page_timeout: float = field(
        default_factory=lambda: float(os.environ.get("PAGE_TIMEOUT", "30.0"))
    )

    # ------------------------------------------------------------------
    # Scraper
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    bot_user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "BOT_USER_AGENT",
            "Mozilla/5.0 (compatible; SiteLensBot/1.0; +https://github.com/sitelens)",
        )
    )
    robots_timeout: float = field(
        default_factory=lambda: float(os.environ.get("ROBOTS_TIMEOUT", "10.0"))
    )
    robots_fail_open: bool = field(
        default_factory=lambda: _env_bool("ROBOTS_FAIL_OPEN", "true")
    )
    max_text_chars: int = field(
        default_factory=lambda: int(os.environ.get("MAX_TEXT_CHARS", "50000"))
    )
    max_main_text_chars: int = field(
        default_factory=lambda: int(os.environ.get("MAX_MAIN_TEXT_CHARS", "20000"))
    )
    default_currency: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_CURRENCY", "JPY")
    )

    # ------------------------------------------------------------------
    # Crawler
    # ------------------------------------------------------------------
    crawl_delay: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_DELAY", "1.0"))
    )
    crawl_max_pages: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_PAGES", "10"))
    )
    # Wall-clock ceiling for one crawl invocation, in seconds.
    crawl_time_limit: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_TIME_LIMIT", "240.0"))
    )

    # ------------------------------------------------------------------
    # Chat / enrichment model
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "ollama")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "ministral-3:8b")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    )
    llm_timeout: float = field(
        default_factory=lambda: float(os.environ.get("LLM_TIMEOUT", "60.0"))
    )
    default_language: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_LANGUAGE", "ja")
    )

    # ------------------------------------------------------------------
    # API server / logging
    # ------------------------------------------------------------------
    api_host: str = field(
        default_factory=lambda: os.environ.get("API_HOST", "127.0.0.1")
    )
    api_port: int = field(
        default_factory=lambda: int(os.environ.get("API_PORT", "8000"))
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )


# Module-level settings instance; import this everywhere:
#   from sitelens.config import settings
settings = Settings()
