"""
Runtime configuration from environment variables.

Entry points call load_dotenv() first, so a local .env file works the same
as exported variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None = None
    openai_model: str = "gpt-5"
    redis_url: str | None = None
    public_base_url: str = "http://localhost:8000"
    completion_delay: float = 2.0  # Seconds on the success screen
    geotag_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_model=os.environ.get("OPENAI_MODEL", "gpt-5"),
            redis_url=os.environ.get("REDIS_URL") or None,
            public_base_url=os.environ.get(
                "PUBLIC_BASE_URL", "http://localhost:8000"
            ).rstrip("/"),
            completion_delay=float(os.environ.get("COMPLETION_DELAY", "2.0")),
            geotag_timeout=float(os.environ.get("GEOTAG_TIMEOUT", "10.0")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
