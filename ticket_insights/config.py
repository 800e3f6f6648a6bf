"""Environment-driven settings and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///./ticket_insights.db"
DEFAULT_LLM_MODEL = "gpt-4.1-mini"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    openai_api_key: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    log_level: str = "INFO"
    sql_echo: bool = False


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        llm_model=os.getenv("TICKET_INSIGHTS_LLM_MODEL", DEFAULT_LLM_MODEL),
        log_level=os.getenv("TICKET_INSIGHTS_LOG_LEVEL", "INFO").upper(),
        sql_echo=_env_flag("TICKET_INSIGHTS_SQL_ECHO"),
    )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(handler, "_ticket_insights", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._ticket_insights = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
