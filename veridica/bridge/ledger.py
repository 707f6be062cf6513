"""Ledger client boundary: the narrow interface to the external authority.

Bridge boundary
---------------
The ledger is an append-only external authority that durably records a
registration transaction.  Veridica never implements it; it only consumes
it through the ``LedgerClient`` Protocol:

* ``register()`` writes a proof note and returns a ``LedgerReceipt``.
* ``verify()`` looks a transaction up and returns a ``LedgerVerification``.

Registration is **not** idempotent at the authority: two calls for one
fingerprint produce two transactions.  The ownership resolver re-checks the
proof store before every call.

Backends:

1. **AlgorandLedgerClient** (``veridica.bridge.algorand``): zero-amount
   self-payment carrying the proof note.  Requires ``py-algorand-sdk``.
2. **InMemoryLedgerClient** (this module): process-local, deterministic,
   used in development and tests.  Never accepted in production.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from veridica.core.errors import LedgerRejected, LedgerUnavailable
from veridica.core.fingerprint import canonical_json_bytes

if TYPE_CHECKING:
    from veridica.config import VeridicaConfig

logger = logging.getLogger(__name__)

# Algorand note fields are capped at 1 KiB.
MAX_NOTE_BYTES = 1024
DEFAULT_APP_NAME = "Veridica"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class LedgerReceipt(BaseModel):
    """Proof that a registration landed on the ledger."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    explorer_url: str = ""
    confirmed_round: int | None = None


class LedgerVerification(BaseModel):
    """Result of looking a transaction up on the ledger."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    confirmed: bool
    confirmed_round: int | None = None
    note: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class LedgerClient(Protocol):
    """Protocol for ledger backends.

    Implementations raise ``LedgerUnavailable`` (or its subclass
    ``LedgerTimeout``) for transport failures and ``LedgerRejected`` when
    the authority refuses the write.
    """

    def register(
        self,
        fingerprint: str,
        owner_id: str,
        *,
        content_type: str,
        filename: str,
        size_bytes: int,
    ) -> LedgerReceipt:
        """Record a proof for *fingerprint* owned by *owner_id*."""
        ...

    def verify(self, transaction_id: str) -> LedgerVerification:
        """Look up *transaction_id* and decode its proof note."""
        ...


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def build_proof_note(
    fingerprint: str,
    owner_id: str,
    *,
    content_type: str,
    filename: str,
    size_bytes: int,
    app_name: str = DEFAULT_APP_NAME,
    timestamp: datetime | None = None,
) -> bytes:
    """Serialize the on-ledger proof note.

    Raises
    ------
    LedgerRejected
        If the note exceeds ``MAX_NOTE_BYTES``; such a write would be refused
        by the authority, so it is refused before any network call.
    """
    payload = {
        "hash": fingerprint,
        "file": filename,
        "type": content_type,
        "size": size_bytes,
        "user": owner_id,
        "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
        "app": app_name,
    }
    note = canonical_json_bytes(payload)
    if len(note) > MAX_NOTE_BYTES:
        raise LedgerRejected(
            f"Proof note is {len(note)} bytes; the ledger accepts at most "
            f"{MAX_NOTE_BYTES}."
        )
    return note


def explorer_url(base_url: str, transaction_id: str) -> str:
    """Return the public explorer link for a transaction."""
    if not base_url:
        return ""
    return f"{base_url.rstrip('/')}/tx/{transaction_id}"


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryLedgerClient:
    """Process-local ledger for development and tests.

    Transactions are kept in a dict guarded by a lock.  Transaction ids are
    52-character base32 strings (the Algorand shape) derived from the note
    and a sequence number, so two registrations of the same fingerprint get
    two distinct ids, like the real authority.

    Parameters
    ----------
    explorer_base_url:
        Prefix for ``explorer_url`` values.
    latency_seconds:
        Artificial delay applied to every call, for timeout tests.
    app_name:
        Value of the ``app`` field in proof notes.
    """

    def __init__(
        self,
        *,
        explorer_base_url: str = "https://explorer.local",
        latency_seconds: float = 0.0,
        app_name: str = DEFAULT_APP_NAME,
    ) -> None:
        self._explorer_base_url = explorer_base_url
        self._latency_seconds = latency_seconds
        self._app_name = app_name
        self._lock = threading.Lock()
        self._transactions: dict[str, tuple[bytes, int]] = {}
        self._round = 0
        self.available = True
        self.registrations: list[str] = []  # fingerprints, in call order

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    def register(
        self,
        fingerprint: str,
        owner_id: str,
        *,
        content_type: str,
        filename: str,
        size_bytes: int,
    ) -> LedgerReceipt:
        self._simulate_network()
        note = build_proof_note(
            fingerprint,
            owner_id,
            content_type=content_type,
            filename=filename,
            size_bytes=size_bytes,
            app_name=self._app_name,
        )
        with self._lock:
            self._round += 1
            digest = hashlib.sha256(note + self._round.to_bytes(8, "big")).digest()
            txid = base64.b32encode(digest).decode("ascii").rstrip("=")
            self._transactions[txid] = (note, self._round)
            self.registrations.append(fingerprint)
            confirmed_round = self._round

        logger.debug(
            "InMemoryLedgerClient: registered %s for %s as %s",
            fingerprint[:12],
            owner_id,
            txid,
        )
        return LedgerReceipt(
            transaction_id=txid,
            explorer_url=explorer_url(self._explorer_base_url, txid),
            confirmed_round=confirmed_round,
        )

    def verify(self, transaction_id: str) -> LedgerVerification:
        self._simulate_network()
        with self._lock:
            entry = self._transactions.get(transaction_id)
        if entry is None:
            return LedgerVerification(
                transaction_id=transaction_id,
                confirmed=False,
                error="Transaction not found",
            )
        note, confirmed_round = entry
        return LedgerVerification(
            transaction_id=transaction_id,
            confirmed=True,
            confirmed_round=confirmed_round,
            note=json.loads(note),
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def register_calls(self) -> int:
        """Number of successful ``register()`` calls."""
        return len(self.registrations)

    def network_status(self) -> dict[str, Any]:
        """Report backend health in the shape the CLI status view expects."""
        with self._lock:
            count = len(self._transactions)
        return {
            "connected": self.available,
            "backend": "memory",
            "last_round": self._round,
            "transactions": count,
        }

    def _simulate_network(self) -> None:
        if self._latency_seconds:
            time.sleep(self._latency_seconds)
        if not self.available:
            raise LedgerUnavailable("In-memory ledger is marked unavailable")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_ledger_client(config: VeridicaConfig) -> LedgerClient:
    """Construct the ledger backend named by ``config.ledger_backend``."""
    if config.ledger_backend == "algorand":
        from veridica.bridge.algorand import AlgorandLedgerClient

        return AlgorandLedgerClient(
            config.algorand_mnemonic,
            algod_url=config.algorand_algod_url,
            indexer_url=config.algorand_indexer_url,
            api_token=config.algorand_api_token,
            explorer_base_url=config.algorand_explorer_url,
            confirmation_rounds=config.algorand_confirmation_rounds,
            app_name=config.app_name,
        )

    logger.info("Using the in-memory ledger (development only).")
    return InMemoryLedgerClient(app_name=config.app_name)
