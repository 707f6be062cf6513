"""Storage policy: the one place deployment mode reaches the proof store."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class StoragePolicy(BaseModel):
    """Fallback policy for the tiered proof store.

    Constructed once at startup (see ``build_storage_policy``) and passed
    into ``TieredProofStore``.  In production the Secondary tier is never
    read or written, whatever ``secondary_enabled`` was requested as.
    """

    model_config = ConfigDict(frozen=True)

    environment: str = "development"
    secondary_enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def _production_has_no_secondary(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("environment") == "production":
            data = {**data, "secondary_enabled": False}
        return data

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def fail_closed(self) -> bool:
        """Whether an unavailable Primary tier is a hard failure."""
        return not self.secondary_enabled

    @classmethod
    def production(cls) -> StoragePolicy:
        return cls(environment="production", secondary_enabled=False)

    @classmethod
    def development(cls) -> StoragePolicy:
        return cls(environment="development", secondary_enabled=True)
