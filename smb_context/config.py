"""
Engine configuration loaded from the environment (and an optional .env file).

The Gemini API key is an explicit setting: when it is missing the engine is
built without an LLM client and runs in degraded mode instead of failing.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


class EngineSettings(BaseModel):
    """Runtime settings for the Business Context Engine"""

    # LLM
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key; None means degraded mode")
    model_name: str = Field(default="gemini-2.0-flash", description="Gemini model used for every LLM step")
    llm_timeout_seconds: float = Field(default=20.0, gt=0, description="Per-step LLM timeout")
    llm_max_retries: int = Field(default=0, ge=0, description="Retries performed by the LLM adapter itself")
    temperature: float = Field(default=0.4, ge=0, le=2)

    # Data
    database_url: str = Field(default="sqlite:///smb_context.db")
    window_days: int = Field(default=90, gt=0, description="Recency window for activity reads")
    window_limit: int = Field(default=20, gt=0, description="Maximum records per activity read")
    context_cache_ttl_seconds: float = Field(default=300.0, ge=0, description="BusinessContext memo TTL; 0 disables")

    # Derivation
    max_items: int = Field(default=5, gt=0, description="Upper bound for every extracted list")

    # Relationship thresholds
    vip_threshold: float = Field(default=10000.0)
    regular_threshold: float = Field(default=1000.0)
    at_risk_days: int = Field(default=90)

    log_level: str = Field(default="WARNING")

    @property
    def llm_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineSettings":
        """Build settings from environment variables, loading .env first."""
        load_dotenv(dotenv_path)
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        return cls(
            gemini_api_key=api_key.strip() if api_key and api_key.strip() else None,
            model_name=os.getenv("SMB_CONTEXT_MODEL", "gemini-2.0-flash"),
            llm_timeout_seconds=_env_float("SMB_CONTEXT_LLM_TIMEOUT", 20.0),
            llm_max_retries=_env_int("SMB_CONTEXT_LLM_RETRIES", 0),
            database_url=os.getenv("SMB_CONTEXT_DATABASE_URL", "sqlite:///smb_context.db"),
            window_days=_env_int("SMB_CONTEXT_WINDOW_DAYS", 90),
            window_limit=_env_int("SMB_CONTEXT_WINDOW_LIMIT", 20),
            context_cache_ttl_seconds=_env_float("SMB_CONTEXT_CACHE_TTL", 300.0),
            max_items=_env_int("SMB_CONTEXT_MAX_ITEMS", 5),
            vip_threshold=_env_float("SMB_CONTEXT_VIP_THRESHOLD", 10000.0),
            regular_threshold=_env_float("SMB_CONTEXT_REGULAR_THRESHOLD", 1000.0),
            at_risk_days=_env_int("SMB_CONTEXT_AT_RISK_DAYS", 90),
            log_level=os.getenv("SMB_CONTEXT_LOG_LEVEL", "WARNING").upper(),
        )


def configure_logging(level: str = "WARNING") -> None:
    """Configure root logging for the API and CLI entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
