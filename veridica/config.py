"""Runtime configuration: env-driven via pydantic-settings.

Reads from a ``.env`` file and ``VERIDICA_*`` environment variables.
Deployment mode is read here and nowhere else: ``build_storage_policy``
turns it into a ``StoragePolicy`` once at startup.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class VeridicaConfig(BaseSettings):
    """Configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export VERIDICA_ENVIRONMENT=production
        export VERIDICA_LEDGER_BACKEND=algorand
        export VERIDICA_ALGORAND_MNEMONIC="word1 word2 ... word25"

    Or via .env file::

        VERIDICA_ENVIRONMENT=development
        VERIDICA_PRIMARY_DB_PATH=/data/proofs.db
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="VERIDICA_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False
    app_name: str = "Veridica"

    # Primary tier
    primary_db_path: Path = Path(".veridica/proofs.db")
    primary_auto_migrate: bool = True
    primary_busy_timeout_seconds: float = 5.0

    # Secondary tier (development only; ignored in production)
    secondary_enabled: bool = True
    secondary_cache_path: Path | None = Path(".veridica/veridica_proofs.json")

    # Ledger
    ledger_backend: str = "memory"  # memory | algorand
    ledger_timeout_seconds: float = 30.0

    # Partial-failure policy: mirror retries after a successful ledger write
    mirror_retry_attempts: int = 3
    mirror_retry_backoff_seconds: float = 0.5

    # Algorand
    algorand_algod_url: str = "https://testnet-api.4160.nodely.io"
    algorand_indexer_url: str = "https://testnet-idx.4160.nodely.io"
    algorand_api_token: str = ""
    algorand_mnemonic: str = ""
    algorand_explorer_url: str = "https://testnet.allo.info"
    algorand_confirmation_rounds: int = 4

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"
