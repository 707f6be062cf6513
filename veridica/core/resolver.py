"""Ownership resolver: decides whether content is new, mine, or someone else's.

Every request runs the same small state machine::

    Start -> ComputeFingerprint -> CheckExistence
        NotFound            -> RegisterOnLedger -> PersistProof -> Confirmed(new)
        FoundSameOwner      -> Confirmed(existing)      (no ledger call)
        FoundDifferentOwner -> Rejected(Conflict)
        DataUnavailable     -> Rejected(Unverifiable)

The resolver holds no per-request state.  The proof store and the ledger
client are injected; the storage policy lives inside the store, so nothing
here branches on the deployment environment.

Partial failure: once the ledger has accepted a registration it is the
source of truth.  If the proof record then cannot be mirrored to any
permitted tier, the registration is still reported as ``confirmed_new``
with ``unmirrored=True`` and an ``unmirrored`` event is published so the
record can be handed to ``reconcile()`` later.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import TYPE_CHECKING, TypeVar

from veridica.bridge.directory import MappingOwnerDirectory, OwnerDirectory
from veridica.bridge.ledger import LedgerClient, LedgerVerification
from veridica.core.errors import DataUnavailable, LedgerTimeout
from veridica.core.events import ProofEvent, ProofEventBus, ProofEventKind
from veridica.core.fingerprint import compute_fingerprint
from veridica.core.tiered_store import TieredProofStore
from veridica.models.proofs import (
    OwnershipQueryResult,
    ProofRecord,
    ProofStatus,
    RegistrationOutcome,
    RegistrationResult,
    SaveResult,
)

if TYPE_CHECKING:
    from veridica.config import VeridicaConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNAVAILABLE_MESSAGE = "Ownership verification temporarily unavailable"


class OwnershipResolver:
    """Public API for ownership checks and proof registration.

    Parameters
    ----------
    store:
        Tiered proof store, already bound to the process storage policy.
    ledger:
        Ledger client used for registration and verification.
    directory:
        Maps owner ids to public handles for conflict messages.  Defaults to
        an empty ``MappingOwnerDirectory`` (handle = owner id).
    events:
        Optional event bus notified of every resolution outcome.
    ledger_timeout_seconds:
        Upper bound on a single ledger call.
    mirror_retry_attempts:
        Extra attempts to persist a proof record after the ledger accepted it.
    mirror_retry_backoff_seconds:
        Pause between those attempts.
    """

    def __init__(
        self,
        store: TieredProofStore,
        ledger: LedgerClient,
        *,
        directory: OwnerDirectory | None = None,
        events: ProofEventBus | None = None,
        ledger_timeout_seconds: float = 30.0,
        mirror_retry_attempts: int = 3,
        mirror_retry_backoff_seconds: float = 0.5,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.directory = directory or MappingOwnerDirectory()
        self.events = events
        self._ledger_timeout = ledger_timeout_seconds
        self._mirror_retries = max(0, mirror_retry_attempts)
        self._mirror_backoff = mirror_retry_backoff_seconds

    @classmethod
    def from_config(
        cls,
        config: VeridicaConfig,
        *,
        directory: OwnerDirectory | None = None,
        events: ProofEventBus | None = None,
    ) -> OwnershipResolver:
        """Validate *config*, build the policy, store and ledger, and wire them.

        Raises
        ------
        ProductionConfigError
            If the configuration violates a production constraint.
        """
        from veridica.bridge.ledger import build_ledger_client
        from veridica.core.production_guard import (
            build_storage_policy,
            enforce_production_constraints,
        )
        from veridica.core.tiered_store import build_proof_store

        enforce_production_constraints(config)
        policy = build_storage_policy(config)
        return cls(
            build_proof_store(config, policy),
            build_ledger_client(config),
            directory=directory,
            events=events,
            ledger_timeout_seconds=config.ledger_timeout_seconds,
            mirror_retry_attempts=config.mirror_retry_attempts,
            mirror_retry_backoff_seconds=config.mirror_retry_backoff_seconds,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_ownership(self, content: bytes, requester_id: str) -> OwnershipQueryResult:
        """Report whether *content* is registered and whether *requester_id* owns it.

        Never raises for store unavailability: the answer is then
        ``verifiable=False`` with a generic error, and ``exists`` is False
        only in the sense of "not established".
        """
        fingerprint = compute_fingerprint(content)
        try:
            lookup = self.store.find_by_fingerprint(fingerprint)
        except DataUnavailable as exc:
            logger.warning(
                "Ownership check for %s is unverifiable: %s", fingerprint[:12], exc.cause
            )
            return OwnershipQueryResult(
                exists=False,
                is_owner=False,
                fingerprint=fingerprint,
                error=UNAVAILABLE_MESSAGE,
                verifiable=False,
            )

        record = lookup.record
        if record is None:
            return OwnershipQueryResult(
                exists=False,
                is_owner=False,
                fingerprint=fingerprint,
                degraded=lookup.degraded,
            )

        handle = self.directory.public_handle(record.owner_id)
        if record.owner_id == requester_id:
            return OwnershipQueryResult(
                exists=True,
                is_owner=True,
                fingerprint=fingerprint,
                owner_id=record.owner_id,
                owner_public_handle=handle,
                registered_at=record.created_at,
                proof_ref=record.proof_ref,
                degraded=lookup.degraded,
            )
        return OwnershipQueryResult(
            exists=True,
            is_owner=False,
            fingerprint=fingerprint,
            owner_public_handle=handle,
            registered_at=record.created_at,
            degraded=lookup.degraded,
        )

    def list_proofs(self, owner_id: str) -> list[ProofRecord]:
        """Return *owner_id*'s proofs, newest first.

        Raises
        ------
        DataUnavailable
            The store cannot answer under the current policy.
        """
        return self.store.list_by_owner(owner_id)

    def verify_proof(self, transaction_id: str) -> LedgerVerification:
        """Look a ledger transaction up, bounded by the ledger timeout."""
        return self._call_ledger("verify", self.ledger.verify, transaction_id)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_proof(
        self,
        content: bytes,
        content_type: str,
        requester_id: str,
        content_id: str | None = None,
        filename: str = "",
    ) -> RegistrationResult:
        """Register *content* for *requester_id*, or explain why not.

        Raises
        ------
        HashError
            *content* is not bytes-like.
        LedgerUnavailable, LedgerTimeout, LedgerRejected
            The ledger refused or could not be reached.  Nothing was
            persisted.
        """
        fingerprint = compute_fingerprint(content)
        try:
            lookup = self.store.find_by_fingerprint(fingerprint)
        except DataUnavailable as exc:
            return self._unverifiable(fingerprint, requester_id, exc)

        existing = lookup.record
        if existing is not None:
            if existing.owner_id == requester_id:
                return self._existing(existing, requester_id, degraded=lookup.degraded)
            return self._conflict(existing, requester_id, degraded=lookup.degraded)

        receipt = self._call_ledger(
            "register",
            self.ledger.register,
            fingerprint,
            requester_id,
            content_type=content_type,
            filename=filename,
            size_bytes=len(content),
        )
        logger.info(
            "Registered %s for %s on the ledger as %s",
            fingerprint[:12],
            requester_id,
            receipt.transaction_id,
        )

        record = ProofRecord(
            fingerprint=fingerprint,
            owner_id=requester_id,
            content_type=content_type,
            filename=filename,
            file_size_bytes=len(content),
            content_id=content_id,
            ledger_transaction_id=receipt.transaction_id,
            ledger_explorer_url=receipt.explorer_url,
            status=ProofStatus.PENDING,
        )
        return self._mirror(record, requester_id, event_kind=ProofEventKind.REGISTERED)

    def reconcile(self, record: ProofRecord) -> RegistrationResult:
        """Retry mirroring an ``unmirrored`` registration.

        The ledger is not contacted; *record* already carries the
        transaction it recorded.
        """
        logger.info(
            "Reconciling %s (transaction %s)",
            record.fingerprint[:12],
            record.ledger_transaction_id,
        )
        return self._mirror(
            record, record.owner_id, event_kind=ProofEventKind.RECONCILED
        )

    # ------------------------------------------------------------------
    # Persistence after a ledger write
    # ------------------------------------------------------------------

    def _mirror(
        self,
        record: ProofRecord,
        requester_id: str,
        *,
        event_kind: ProofEventKind,
    ) -> RegistrationResult:
        try:
            saved = self._save_with_retry(record)
        except DataUnavailable:
            return self._unmirrored(record, requester_id)
        except Exception:
            logger.error(
                "Proof for %s is on the ledger (%s) but could not be stored",
                record.fingerprint[:12],
                record.ledger_transaction_id,
            )
            raise

        if saved.is_conflict:
            return self._lost_race(record, saved, requester_id)

        stored = saved.record
        if stored.ledger_transaction_id != record.ledger_transaction_id:
            # Same owner won with an earlier transaction.
            logger.info(
                "Duplicate registration of %s by %s; keeping transaction %s over %s",
                record.fingerprint[:12],
                requester_id,
                stored.ledger_transaction_id,
                record.ledger_transaction_id,
            )
            return self._existing(stored, requester_id, degraded=saved.degraded)

        try:
            stored = self.store.confirm(saved)
        except DataUnavailable:
            logger.warning(
                "Proof for %s stored but left pending", record.fingerprint[:12]
            )

        result = RegistrationResult(
            outcome=RegistrationOutcome.CONFIRMED_NEW,
            fingerprint=stored.fingerprint,
            record=stored,
            transaction_id=stored.ledger_transaction_id,
            explorer_url=stored.ledger_explorer_url,
            owner_public_handle=self.directory.public_handle(stored.owner_id),
            registered_at=stored.created_at,
            degraded=saved.degraded,
            message="Proof registered",
        )
        self._publish(event_kind, stored.fingerprint, requester_id, stored.ledger_transaction_id)
        return result

    def _save_with_retry(self, record: ProofRecord) -> SaveResult:
        attempt = 0
        while True:
            try:
                return self.store.save(record)
            except DataUnavailable:
                if attempt >= self._mirror_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Proof store unavailable for %s; retry %d/%d",
                    record.fingerprint[:12],
                    attempt,
                    self._mirror_retries,
                )
                if self._mirror_backoff:
                    time.sleep(self._mirror_backoff * attempt)

    def _lost_race(
        self, record: ProofRecord, saved: SaveResult, requester_id: str
    ) -> RegistrationResult:
        logger.warning(
            "Registration of %s by %s lost to an existing owner; "
            "ledger transaction %s is orphaned",
            record.fingerprint[:12],
            requester_id,
            record.ledger_transaction_id,
        )
        winner = saved.record
        try:
            lookup = self.store.find_by_fingerprint(record.fingerprint)
        except DataUnavailable:
            lookup = None
        if lookup is not None and lookup.record is not None:
            winner = lookup.record
        return self._conflict(winner, requester_id, degraded=saved.degraded)

    # ------------------------------------------------------------------
    # Result builders
    # ------------------------------------------------------------------

    def _existing(
        self, record: ProofRecord, requester_id: str, *, degraded: bool
    ) -> RegistrationResult:
        self._publish(
            ProofEventKind.CONFIRMED_EXISTING,
            record.fingerprint,
            requester_id,
            record.ledger_transaction_id,
        )
        return RegistrationResult(
            outcome=RegistrationOutcome.CONFIRMED_EXISTING,
            fingerprint=record.fingerprint,
            record=record,
            transaction_id=record.ledger_transaction_id,
            explorer_url=record.ledger_explorer_url,
            owner_public_handle=self.directory.public_handle(record.owner_id),
            registered_at=record.created_at,
            degraded=degraded,
            message="You already own this content",
        )

    def _conflict(
        self, record: ProofRecord, requester_id: str, *, degraded: bool
    ) -> RegistrationResult:
        handle = self.directory.public_handle(record.owner_id)
        self._publish(
            ProofEventKind.CONFLICT,
            record.fingerprint,
            requester_id,
            details={"owner_public_handle": handle},
        )
        return RegistrationResult(
            outcome=RegistrationOutcome.REJECTED_CONFLICT,
            fingerprint=record.fingerprint,
            owner_public_handle=handle,
            registered_at=record.created_at,
            degraded=degraded,
            message=f"Content already registered by {handle}",
        )

    def _unverifiable(
        self, fingerprint: str, requester_id: str, exc: DataUnavailable
    ) -> RegistrationResult:
        logger.error(
            "Refusing registration of %s: ownership cannot be determined (%s)",
            fingerprint[:12],
            type(exc.cause).__name__ if exc.cause else "unavailable",
        )
        self._publish(ProofEventKind.UNVERIFIABLE, fingerprint, requester_id)
        return RegistrationResult(
            outcome=RegistrationOutcome.REJECTED_UNVERIFIABLE,
            fingerprint=fingerprint,
            message=UNAVAILABLE_MESSAGE,
        )

    def _unmirrored(self, record: ProofRecord, requester_id: str) -> RegistrationResult:
        logger.error(
            "Proof for %s is on the ledger (%s) but no tier accepted it; "
            "reconcile later",
            record.fingerprint[:12],
            record.ledger_transaction_id,
        )
        self._publish(
            ProofEventKind.UNMIRRORED,
            record.fingerprint,
            requester_id,
            record.ledger_transaction_id,
            details={"record": record.model_dump(mode="json")},
        )
        return RegistrationResult(
            outcome=RegistrationOutcome.CONFIRMED_NEW,
            fingerprint=record.fingerprint,
            record=record,
            transaction_id=record.ledger_transaction_id,
            explorer_url=record.ledger_explorer_url,
            owner_public_handle=self.directory.public_handle(record.owner_id),
            unmirrored=True,
            message="Proof registered on the ledger; local record pending reconciliation",
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _call_ledger(self, operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run a ledger call in a worker thread, bounded by the ledger timeout."""
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="veridica-ledger")
        try:
            future = pool.submit(fn, *args, **kwargs)
            try:
                return future.result(timeout=self._ledger_timeout)
            except FutureTimeout as exc:
                logger.error(
                    "Ledger %s timed out after %.1fs", operation, self._ledger_timeout
                )
                raise LedgerTimeout(
                    f"Ledger {operation} did not complete within "
                    f"{self._ledger_timeout:.1f}s"
                ) from exc
        finally:
            pool.shutdown(wait=False)

    def _publish(
        self,
        kind: ProofEventKind,
        fingerprint: str,
        requester_id: str,
        transaction_id: str | None = None,
        *,
        details: dict | None = None,
    ) -> None:
        if self.events is None:
            return
        self.events.publish(
            ProofEvent(
                kind=kind,
                fingerprint=fingerprint,
                requester_id=requester_id,
                transaction_id=transaction_id,
                details=details or {},
            )
        )


def build_resolver(
    config: VeridicaConfig,
    *,
    directory: OwnerDirectory | None = None,
    events: ProofEventBus | None = None,
) -> OwnershipResolver:
    """Convenience alias for ``OwnershipResolver.from_config``."""
    return OwnershipResolver.from_config(config, directory=directory, events=events)
