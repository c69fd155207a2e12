"""
Server configuration for offersign.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Set

from ..exceptions import ConfigurationError
from ..models import RetryPolicy
from ..validation import validate_url

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5174",
    "http://localhost:5173",
    "https://varm-signing.web.app",
    "https://varm-signing.firebaseapp.com",
]


def _env_list(name: str) -> Optional[list]:
    value = os.environ.get(name)
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ServerConfig:
    """Configuration for the offersign server."""

    host: str = "0.0.0.0"
    port: int = 8000

    # "airtable" for the real table, "memory" for seeded demo offers.
    record_store: str = "airtable"

    airtable_base_id: Optional[str] = None
    airtable_api_key: Optional[str] = None
    airtable_table_name: str = "Offers"
    airtable_base_url: str = "https://api.airtable.com/v0"
    airtable_timeout: float = 30.0

    # Empty set disables API key checks (local development).
    api_keys: Set[str] = field(default_factory=set)

    cors_origins: list = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    sign_max_attempts: int = 3
    sign_base_delay_ms: int = 200
    sign_max_delay_ms: int = 1000

    debug: bool = False

    log_level: str = "info"

    version: str = "1.0.0"

    def __post_init__(self):
        if self.airtable_base_id is None:
            self.airtable_base_id = os.environ.get("AIRTABLE_BASE_ID")
        if self.airtable_api_key is None:
            self.airtable_api_key = os.environ.get("AIRTABLE_API_KEY")

        if not self.api_keys:
            self.api_keys = set(_env_list("OFFERSIGN_API_KEYS") or ())

        if self.record_store not in ("airtable", "memory"):
            raise ValueError(
                f"record_store must be 'airtable' or 'memory', got {self.record_store!r}"
            )

        validate_url(self.airtable_base_url, "airtable_base_url")

    def check_record_store(self) -> None:
        """Fail fast when the Airtable store is selected without credentials."""
        if self.record_store == "airtable" and not (
            self.airtable_base_id and self.airtable_api_key
        ):
            raise ConfigurationError(
                "AIRTABLE_BASE_ID and AIRTABLE_API_KEY must be set to use the Airtable record store"
            )

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_keys)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.sign_max_attempts,
            base_delay_ms=self.sign_base_delay_ms,
            max_delay_ms=self.sign_max_delay_ms,
        )

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""
        return cls(
            host=os.environ.get("OFFERSIGN_HOST", "0.0.0.0"),
            port=int(os.environ.get("OFFERSIGN_PORT", "8000")),
            record_store=os.environ.get("OFFERSIGN_RECORD_STORE", "airtable"),
            airtable_table_name=os.environ.get("AIRTABLE_TABLE_NAME", "Offers"),
            airtable_base_url=os.environ.get(
                "AIRTABLE_BASE_URL", "https://api.airtable.com/v0"
            ),
            cors_origins=_env_list("OFFERSIGN_CORS_ORIGINS") or list(DEFAULT_CORS_ORIGINS),
            sign_max_attempts=int(os.environ.get("OFFERSIGN_SIGN_MAX_ATTEMPTS", "3")),
            sign_base_delay_ms=int(os.environ.get("OFFERSIGN_SIGN_BASE_DELAY_MS", "200")),
            sign_max_delay_ms=int(os.environ.get("OFFERSIGN_SIGN_MAX_DELAY_MS", "1000")),
            debug=os.environ.get("OFFERSIGN_DEBUG", "").lower() == "true",
            log_level=os.environ.get("OFFERSIGN_LOG_LEVEL", "info"),
        )
