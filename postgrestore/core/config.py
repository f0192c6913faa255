"""
Store configuration using Pydantic Settings.

Configuration values can be set via environment variables (prefixed with
``POSTGRESTORE_``) or a .env file.
"""

import json
from typing import List, Optional, Tuple, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_HASH_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="POSTGRESTORE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./data/sessions.db"

    # Cookie defaults copied into every new session
    COOKIE_PATH: str = "/"
    COOKIE_DOMAIN: Optional[str] = None
    COOKIE_SECURE: bool = False
    COOKIE_HTTPONLY: bool = True
    COOKIE_SAMESITE: str = "lax"
    MAX_AGE: int = 86400 * 30

    # Flat list of secrets; consecutive entries are (hash_key, block_key) pairs
    KEY_PAIRS: Union[List[str], str] = []

    # Logging
    DEV_MODE: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @field_validator("KEY_PAIRS", mode="before")
    @classmethod
    def parse_key_pairs(cls, v):
        """Parse key pairs from a JSON list or a comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return []
            if v.startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("KEY_PAIRS")
    @classmethod
    def validate_hash_keys(cls, v):
        if isinstance(v, str) or not all(isinstance(item, str) for item in v):
            raise ValueError("KEY_PAIRS must be a flat list of strings")
        for index in range(0, len(v), 2):
            if len(v[index].encode("utf-8")) < MIN_HASH_KEY_LENGTH:
                raise ValueError(
                    f"hash key #{index // 2} must be at least {MIN_HASH_KEY_LENGTH} bytes long"
                )
        return v

    def key_pairs(self) -> List[Tuple[bytes, Optional[bytes]]]:
        """Return the configured secrets grouped as (hash_key, block_key) pairs."""
        secrets = [s.encode("utf-8") for s in self.KEY_PAIRS]
        pairs = []
        for index in range(0, len(secrets), 2):
            block_key = secrets[index + 1] if index + 1 < len(secrets) else None
            pairs.append((secrets[index], block_key))
        return pairs

