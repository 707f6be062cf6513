"""Closed error taxonomy for ownership resolution.

Raw backend errors (sqlite3, HTTP clients) are translated into these types
exactly once, at the adapter that talks to the backend.  Nothing above the
adapters inspects error text.

Hierarchy::

    VeridicaError
    ├── HashError
    ├── LedgerError
    │   ├── LedgerUnavailable
    │   │   └── LedgerTimeout
    │   └── LedgerRejected
    ├── StoreError
    │   ├── StoreUnavailableError
    │   │   ├── StoreSchemaMissing
    │   │   ├── StoreAccessRestricted
    │   │   └── StoreTransientFault
    │   └── StoreConflict
    └── DataUnavailable
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from veridica.models.proofs import ProofRecord


class VeridicaError(RuntimeError):
    """Base class for every error raised by veridica."""


class HashError(VeridicaError):
    """Raised when content cannot be read into the fingerprint engine."""


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerError(VeridicaError):
    """Base class for ledger client failures."""


class LedgerUnavailable(LedgerError):
    """The ledger could not be reached (transport fault, 5xx, no credentials)."""


class LedgerTimeout(LedgerUnavailable):
    """The ledger did not answer within the configured bound.

    The write may or may not have landed; callers must re-check the store
    before retrying.
    """


class LedgerRejected(LedgerError):
    """The ledger authority refused the write.  Terminal, never retried."""


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class StoreError(VeridicaError):
    """Base class for proof store failures."""


class StoreUnavailableError(StoreError):
    """A tier is unavailable in a way that permits fallback outside production."""


class StoreSchemaMissing(StoreUnavailableError):
    """The ``proofs`` table does not exist."""


class StoreAccessRestricted(StoreUnavailableError):
    """The tier refused access (read-only, permissions, plan restriction)."""


class StoreTransientFault(StoreUnavailableError):
    """The tier is busy, locked, or could not be opened right now."""


class StoreConflict(StoreError):
    """A record already exists for the fingerprint.

    This is a business outcome (ownership exclusivity), not a system
    failure.  It is never retried and never triggers tier fallback.
    """

    def __init__(self, fingerprint: str, existing: ProofRecord | None = None) -> None:
        super().__init__(f"Fingerprint {fingerprint} is already registered")
        self.fingerprint = fingerprint
        self.existing = existing


class DataUnavailable(VeridicaError):
    """Ownership cannot be determined because no permitted tier answered.

    Distinct from a conflict: this means "cannot determine", not
    "determined, and it is not yours".
    """

    def __init__(self, message: str = "", *, cause: StoreUnavailableError | None = None) -> None:
        super().__init__(message or "Ownership verification temporarily unavailable")
        self.cause = cause
