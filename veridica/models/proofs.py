"""Proof record and ownership result models.

A ``ProofRecord`` is the mirrored copy of a ledger registration.  It is
keyed by the content fingerprint, created exactly once, and never deleted.
Once ``confirmed`` its ``fingerprint`` and ``owner_id`` are fixed; only
``status`` and ``updated_at`` may change afterwards.

``OwnershipQueryResult`` and ``RegistrationResult`` are read-only
projections returned to callers.  They are never persisted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProofStatus(str, Enum):
    """Lifecycle of a proof registration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class StorageTier(str, Enum):
    """Persistence backend a record was read from or written to."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ProofRecord(BaseModel):
    """Ownership proof for a single fingerprint.

    ``created_at`` and ``updated_at`` are assigned by the tier that stores
    the record; values supplied by the caller are overwritten on insert.
    """

    model_config = ConfigDict(frozen=True)

    fingerprint: str  # SHA-256 hex of the content bytes
    owner_id: str
    content_type: str
    filename: str = ""
    file_size_bytes: int = 0
    content_id: str | None = None
    ledger_transaction_id: str
    ledger_explorer_url: str = ""
    status: ProofStatus = ProofStatus.PENDING
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def proof_ref(self) -> ProofRef:
        """Public pointer to the ledger transaction backing this record."""
        return ProofRef(
            transaction_id=self.ledger_transaction_id,
            explorer_url=self.ledger_explorer_url,
        )

    def same_claim(self, other: ProofRecord) -> bool:
        """True if both records describe the same registration.

        Compares every field except the tier-assigned timestamps.
        """
        exclude = {"created_at", "updated_at"}
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)


class ProofRef(BaseModel):
    """Reference to a ledger transaction."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    explorer_url: str = ""


class ProofLookup(BaseModel):
    """Result of a tiered read."""

    model_config = ConfigDict(frozen=True)

    record: ProofRecord | None = None
    tier: StorageTier = StorageTier.PRIMARY
    degraded: bool = False  # True when served by the Secondary tier

    @property
    def found(self) -> bool:
        return self.record is not None


class SaveOutcome(str, Enum):
    """Outcome of an insert-if-absent write."""

    PERSISTED = "persisted"
    CONFLICT = "conflict"


class SaveResult(BaseModel):
    """Result of a tiered write.

    ``record`` is the record now stored under the fingerprint: the one just
    written, or the pre-existing one for a same-owner no-op or a conflict.
    """

    model_config = ConfigDict(frozen=True)

    outcome: SaveOutcome
    record: ProofRecord
    tier: StorageTier = StorageTier.PRIMARY
    degraded: bool = False

    @property
    def is_conflict(self) -> bool:
        return self.outcome is SaveOutcome.CONFLICT


class OwnershipQueryResult(BaseModel):
    """Answer to "does this content exist, and is it mine?".

    When the content belongs to another principal only
    ``owner_public_handle`` and ``registered_at`` describe the owner.
    ``verifiable`` is False when ownership could not be determined.
    """

    model_config = ConfigDict(frozen=True)

    exists: bool
    is_owner: bool
    fingerprint: str = ""
    owner_id: str | None = None
    owner_public_handle: str | None = None
    registered_at: datetime | None = None
    proof_ref: ProofRef | None = None
    error: str | None = None
    verifiable: bool = True
    degraded: bool = False


class RegistrationOutcome(str, Enum):
    """Terminal states of the ownership resolver."""

    CONFIRMED_NEW = "confirmed_new"
    CONFIRMED_EXISTING = "confirmed_existing"
    REJECTED_CONFLICT = "rejected_conflict"
    REJECTED_UNVERIFIABLE = "rejected_unverifiable"


class RejectionReason(str, Enum):
    """Why a registration was refused."""

    CONFLICT = "conflict"
    UNVERIFIABLE = "unverifiable"


_REJECTIONS = {
    RegistrationOutcome.REJECTED_CONFLICT: RejectionReason.CONFLICT,
    RegistrationOutcome.REJECTED_UNVERIFIABLE: RejectionReason.UNVERIFIABLE,
}


class RegistrationResult(BaseModel):
    """Result of ``OwnershipResolver.register_proof``.

    ``transaction_id`` is set for both confirmed outcomes.  ``rejection`` is
    set for both rejected outcomes.  ``unmirrored`` marks a registration that
    is on the ledger but could not be written to any permitted tier.
    """

    model_config = ConfigDict(frozen=True)

    outcome: RegistrationOutcome
    fingerprint: str
    record: ProofRecord | None = None
    transaction_id: str | None = None
    explorer_url: str | None = None
    owner_public_handle: str | None = None
    registered_at: datetime | None = None
    unmirrored: bool = False
    degraded: bool = False
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.outcome in (
            RegistrationOutcome.CONFIRMED_NEW,
            RegistrationOutcome.CONFIRMED_EXISTING,
        )

    @property
    def rejection(self) -> RejectionReason | None:
        return _REJECTIONS.get(self.outcome)
