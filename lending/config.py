"""Application settings read from the environment (and a local .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_list(name: str, default: str) -> list[str]:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


@dataclass
class Settings:
    app_name: str = os.getenv("LENDING_APP_NAME", "Book Lending Service")
    log_level: str = os.getenv("LENDING_LOG_LEVEL", "INFO")

    # Bearer tokens accepted by the API; issuing them is another service's job.
    api_tokens: list[str] = field(
        default_factory=lambda: _env_list("LENDING_API_TOKENS", "dev-token")
    )

    # Upper bound on waiting for an item scope before failing with StorageError.
    lock_timeout_seconds: float = float(os.getenv("LENDING_LOCK_TIMEOUT_SECONDS", "5"))

    seed_catalog: bool = _env_bool("LENDING_SEED_CATALOG", "True")


settings = Settings()
