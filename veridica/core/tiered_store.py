"""Tiered proof store: single source of truth for "who owns fingerprint F".

Reads and writes go to the Primary tier.  When Primary raises a
recoverable-unavailable error (``StoreUnavailableError``: schema missing,
access restricted, transient fault) the ``StoragePolicy`` decides:

- production: raise ``DataUnavailable``.  The Secondary tier is never
  consulted, for reads or writes.
- development: repeat the operation on the Secondary tier and tag the
  result ``degraded=True``.

Any other error propagates unchanged.  ``StoreConflict`` never reaches
this layer as an exception: tiers report conflicts as a ``SaveResult``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Protocol, TypeVar, runtime_checkable

from veridica.core.errors import DataUnavailable, StoreUnavailableError
from veridica.models.policy import StoragePolicy
from veridica.models.proofs import (
    ProofLookup,
    ProofRecord,
    ProofStatus,
    SaveResult,
    StorageTier,
)

if TYPE_CHECKING:
    from veridica.config import VeridicaConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ProofTier(Protocol):
    """Protocol every persistence tier satisfies."""

    tier: StorageTier

    def find_by_fingerprint(self, fingerprint: str) -> ProofRecord | None: ...

    def insert_if_absent(self, record: ProofRecord) -> SaveResult: ...

    def update_status(self, fingerprint: str, status: ProofStatus) -> ProofRecord | None: ...

    def list_by_owner(self, owner_id: str) -> list[ProofRecord]: ...

    def count(self) -> int: ...


class TieredProofStore:
    """Primary tier with a policy-gated Secondary fallback.

    Parameters
    ----------
    primary:
        The durable shared tier.
    secondary:
        The development-only local tier.  Discarded (with a warning) when
        the policy does not enable it.
    policy:
        The storage policy built once at startup.
    """

    def __init__(
        self,
        primary: ProofTier,
        secondary: ProofTier | None = None,
        *,
        policy: StoragePolicy,
    ) -> None:
        if secondary is not None and not policy.secondary_enabled:
            logger.warning(
                "Secondary proof tier supplied under a %s policy; it will not be used.",
                policy.environment,
            )
            secondary = None
        self._primary = primary
        self._secondary = secondary
        self._policy = policy

    @property
    def policy(self) -> StoragePolicy:
        return self._policy

    @property
    def has_secondary(self) -> bool:
        return self._secondary is not None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_fingerprint(self, fingerprint: str) -> ProofLookup:
        """Look a fingerprint up, falling back per policy.

        Raises
        ------
        DataUnavailable
            Primary is unavailable and no fallback is permitted.
        """
        try:
            record = self._primary.find_by_fingerprint(fingerprint)
        except StoreUnavailableError as exc:
            secondary = self._fallback("read", exc)
            return ProofLookup(
                record=self._on_secondary("read", secondary.find_by_fingerprint, fingerprint),
                tier=StorageTier.SECONDARY,
                degraded=True,
            )
        return ProofLookup(record=record, tier=StorageTier.PRIMARY)

    def list_by_owner(self, owner_id: str) -> list[ProofRecord]:
        """Return the owner's proofs, newest first."""
        try:
            return self._primary.list_by_owner(owner_id)
        except StoreUnavailableError as exc:
            secondary = self._fallback("list", exc)
            return self._on_secondary("list", secondary.list_by_owner, owner_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, record: ProofRecord) -> SaveResult:
        """Insert-if-absent by fingerprint, falling back per policy.

        Returns ``persisted`` (new record, or same-owner no-op) or
        ``conflict`` carrying the existing record.

        Raises
        ------
        DataUnavailable
            Primary is unavailable and no fallback is permitted.
        """
        try:
            return self._primary.insert_if_absent(record)
        except StoreUnavailableError as exc:
            secondary = self._fallback("write", exc)
            result = self._on_secondary("write", secondary.insert_if_absent, record)
            return result.model_copy(update={"degraded": True})

    def confirm(self, saved: SaveResult) -> ProofRecord:
        """Move a freshly saved record from ``pending`` to ``confirmed``.

        The update goes to the tier the record was written to; it never
        falls back, since the record does not exist on the other tier.
        """
        tier = self._secondary if saved.tier is StorageTier.SECONDARY else self._primary
        if tier is None:
            raise DataUnavailable()
        try:
            updated = tier.update_status(saved.record.fingerprint, ProofStatus.CONFIRMED)
        except StoreUnavailableError as exc:
            logger.warning(
                "Could not confirm %s on the %s tier: %s",
                saved.record.fingerprint[:12],
                saved.tier.value,
                exc,
            )
            raise DataUnavailable(cause=exc) from exc
        return updated or saved.record

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def describe(self) -> dict[str, Any]:
        """Availability and record counts per tier, for status displays."""
        info: dict[str, Any] = {
            "environment": self._policy.environment,
            "fail_closed": self._policy.fail_closed,
            "primary": self._describe_tier(self._primary),
            "secondary": None,
        }
        if self._secondary is not None:
            info["secondary"] = self._describe_tier(self._secondary)
        return info

    @staticmethod
    def _describe_tier(tier: ProofTier) -> dict[str, Any]:
        try:
            return {"available": True, "proofs": tier.count()}
        except StoreUnavailableError as exc:
            return {"available": False, "error": type(exc).__name__}

    # ------------------------------------------------------------------
    # Fallback policy
    # ------------------------------------------------------------------

    def _fallback(self, operation: str, exc: StoreUnavailableError) -> ProofTier:
        if self._secondary is None:
            logger.error(
                "Primary proof tier unavailable for %s (%s); no fallback under %s policy.",
                operation,
                type(exc).__name__,
                self._policy.environment,
            )
            raise DataUnavailable(cause=exc) from exc

        logger.warning(
            "Primary proof tier unavailable for %s (%s); using secondary tier (degraded).",
            operation,
            type(exc).__name__,
        )
        return self._secondary

    @staticmethod
    def _on_secondary(operation: str, fn: Callable[[Any], T], arg: Any) -> T:
        try:
            return fn(arg)
        except StoreUnavailableError as exc:
            logger.error("Secondary proof tier also unavailable for %s: %s", operation, exc)
            raise DataUnavailable(cause=exc) from exc


def build_proof_store(config: VeridicaConfig, policy: StoragePolicy) -> TieredProofStore:
    """Wire the tiers named by *config* under *policy*.

    No Secondary tier is constructed unless the policy enables it.
    """
    from veridica.core.local_cache import LocalProofCache
    from veridica.core.primary_store import SqliteProofStore

    primary = SqliteProofStore(
        config.primary_db_path,
        ensure_schema=config.primary_auto_migrate,
        busy_timeout_seconds=config.primary_busy_timeout_seconds,
    )
    secondary = LocalProofCache(config.secondary_cache_path) if policy.secondary_enabled else None
    return TieredProofStore(primary, secondary, policy=policy)
