"""Production configuration guard and storage policy construction.

The guard validates production-critical settings once, at startup, and
fails hard (``ProductionConfigError``) listing every violation.  The
storage policy is derived here from the same configuration and passed into
the proof store; no other module branches on the deployment environment.
"""

from __future__ import annotations

import logging

from veridica.bridge.algorand import validate_mnemonic
from veridica.config import VeridicaConfig
from veridica.models.policy import StoragePolicy

logger = logging.getLogger(__name__)

LEDGER_BACKENDS = ("memory", "algorand")


class ProductionConfigError(RuntimeError):
    """Raised when configuration constraints are violated.

    The system cannot safely start with the current configuration.  It must
    not be caught and ignored; the process should exit.
    """


def enforce_production_constraints(config: VeridicaConfig) -> None:
    """Validate configuration constraints before the resolver is built.

    Constraints enforced
    --------------------
    Always:
    1. ``ledger_backend`` is one of ``LEDGER_BACKENDS``.

    In production:
    2. Debug mode must be disabled.
    3. The in-memory ledger is not allowed; proofs must reach a real ledger.
    4. The Algorand backend mnemonic must be configured (25 words).

    Raises
    ------
    ProductionConfigError
        If any constraint is violated.
    """
    violations: list[str] = []

    if config.ledger_backend not in LEDGER_BACKENDS:
        violations.append(
            f"Unknown ledger backend {config.ledger_backend!r}; expected one of "
            f"{', '.join(LEDGER_BACKENDS)}."
        )

    if config.is_production:
        if config.debug:
            violations.append(
                "debug=True is not allowed in production. Set VERIDICA_DEBUG=false."
            )
        if config.ledger_backend == "memory":
            violations.append(
                "The in-memory ledger cannot back production proofs. "
                "Set VERIDICA_LEDGER_BACKEND=algorand."
            )
        if config.ledger_backend == "algorand":
            violations.extend(
                f"{problem} Set VERIDICA_ALGORAND_MNEMONIC."
                for problem in validate_mnemonic(config.algorand_mnemonic)
            )

    if violations:
        msg = "Configuration guard failed.\n" + "\n".join(f"  - {v}" for v in violations)
        logger.critical(msg)
        raise ProductionConfigError(msg)

    if config.is_production:
        logger.info("Production configuration guard passed.")


def build_storage_policy(config: VeridicaConfig) -> StoragePolicy:
    """Derive the one ``StoragePolicy`` for this process.

    Production never enables the Secondary tier; elsewhere it follows
    ``secondary_enabled``.
    """
    policy = StoragePolicy(
        environment=config.environment,
        secondary_enabled=config.secondary_enabled and not config.is_production,
    )
    logger.info(
        "Storage policy: environment=%s secondary=%s",
        policy.environment,
        "enabled" if policy.secondary_enabled else "disabled",
    )
    return policy
