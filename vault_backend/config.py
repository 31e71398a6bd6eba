"""
Configuration and settings for the ledger backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Shared secret for admin-only routes (x-admin-key header).
    admin_key: Optional[str] = Field(default=None)

    # Storage backend selection: memory, sql or firestore.
    ledger_backend: Optional[Literal["memory", "sql", "firestore"]] = Field(
        default=None
    )
    database_url: Optional[str] = Field(default=None)
    use_in_memory_backends: bool = Field(default=False)

    # Firestore
    firebase_credentials_path: Optional[str] = Field(default=None)
    firebase_project_id: Optional[str] = Field(default=None)

    # Per-uid in-process lock around balance read-modify-write sequences.
    serialize_balance_updates: bool = Field(default=True)

    cors_origins: str = Field(default="")
    log_level: str = Field(default="INFO")

    def resolved_backend(self) -> str:
        if self.use_in_memory_backends:
            return "memory"
        if self.ledger_backend:
            return self.ledger_backend
        return "sql" if self.database_url else "memory"

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
