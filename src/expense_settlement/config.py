"""Configuration management for the settlement engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    store_backend: str
    erp_endpoint: str
    erp_token: str
    erp_timeout_seconds: float
    host: str
    port: int
    debug: bool
    log_level: str

    @property
    def uses_memory_store(self) -> bool:
        return self.store_backend == "memory"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./expense_settlement.db",
            ),
            store_backend=os.getenv("STORE_BACKEND", "sql").strip().lower(),
            erp_endpoint=os.getenv("ERP_ENDPOINT", "").strip(),
            erp_token=os.getenv("ERP_TOKEN", "").strip(),
            erp_timeout_seconds=float(os.getenv("ERP_TIMEOUT_SECONDS", "15")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
