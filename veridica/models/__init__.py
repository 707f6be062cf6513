"""Veridica data models: all Pydantic v2, all frozen (immutable)."""

from veridica.models.policy import StoragePolicy
from veridica.models.proofs import (
    OwnershipQueryResult,
    ProofLookup,
    ProofRecord,
    ProofRef,
    ProofStatus,
    RegistrationOutcome,
    RegistrationResult,
    RejectionReason,
    SaveOutcome,
    SaveResult,
    StorageTier,
)

__all__ = [
    # policy
    "StoragePolicy",
    # proofs
    "ProofStatus",
    "StorageTier",
    "ProofRecord",
    "ProofRef",
    "ProofLookup",
    "SaveOutcome",
    "SaveResult",
    # results
    "OwnershipQueryResult",
    "RegistrationOutcome",
    "RegistrationResult",
    "RejectionReason",
]
