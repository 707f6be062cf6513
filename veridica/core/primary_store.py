"""Primary proof tier: durable, shared, backed by a SQLite ``proofs`` table.

Design:
- Insert-if-absent keyed on ``file_hash`` (UNIQUE constraint); the
  constraint is the atomicity primitive that decides concurrent races.
- No delete.  The only update is ``verification_status`` / ``updated_at``.
- ``created_at`` / ``updated_at`` are assigned here, not by callers.
- Every sqlite3 error is translated by ``classify_sqlite_error`` before it
  leaves this module.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from veridica.core.errors import (
    StoreAccessRestricted,
    StoreConflict,
    StoreError,
    StoreSchemaMissing,
    StoreTransientFault,
)
from veridica.models.proofs import (
    ProofRecord,
    ProofStatus,
    SaveOutcome,
    SaveResult,
    StorageTier,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_CREATE_PROOFS = """
CREATE TABLE IF NOT EXISTS proofs (
    id                    TEXT PRIMARY KEY,
    owner_id              TEXT NOT NULL,
    content_id            TEXT,
    content_type          TEXT NOT NULL,
    filename              TEXT NOT NULL DEFAULT '',
    file_hash             TEXT NOT NULL UNIQUE,
    file_size             INTEGER NOT NULL DEFAULT 0,
    ledger_transaction_id TEXT NOT NULL,
    ledger_explorer_url   TEXT NOT NULL DEFAULT '',
    verification_status   TEXT NOT NULL DEFAULT 'pending',
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);
"""

_CREATE_IDX_OWNER = """
CREATE INDEX IF NOT EXISTS idx_proofs_owner ON proofs(owner_id, created_at);
"""

_COLUMNS = (
    "owner_id, content_id, content_type, filename, file_hash, file_size, "
    "ledger_transaction_id, ledger_explorer_url, verification_status, "
    "created_at, updated_at"
)

_ACCESS_RESTRICTED = {"SQLITE_READONLY", "SQLITE_PERM", "SQLITE_AUTH"}
_TRANSIENT = {
    "SQLITE_BUSY",
    "SQLITE_LOCKED",
    "SQLITE_CANTOPEN",
    "SQLITE_IOERR",
    "SQLITE_PROTOCOL",
    "SQLITE_FULL",
}


def classify_sqlite_error(exc: sqlite3.Error) -> StoreError | None:
    """Translate a sqlite3 error into the store taxonomy.

    Returns ``None`` for errors that are not a recoverable-unavailable
    condition; the caller re-raises those unchanged.
    """
    name = getattr(exc, "sqlite_errorname", "") or ""
    primary = "_".join(name.split("_")[:2])  # SQLITE_BUSY_SNAPSHOT -> SQLITE_BUSY

    if primary in _ACCESS_RESTRICTED:
        return StoreAccessRestricted(f"proofs tier refused access: {exc}")
    if primary in _TRANSIENT:
        return StoreTransientFault(f"proofs tier temporarily unavailable: {exc}")
    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        if "no such table" in message:
            return StoreSchemaMissing(f"proofs table is missing: {exc}")
        if "readonly" in message:
            return StoreAccessRestricted(f"proofs tier refused access: {exc}")
        if "locked" in message or "unable to open" in message:
            return StoreTransientFault(f"proofs tier temporarily unavailable: {exc}")
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqliteProofStore:
    """Primary tier: the ``proofs`` table in a SQLite database.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    ensure_schema:
        Create the ``proofs`` table on open.  When False a missing table
        surfaces as ``StoreSchemaMissing``.
    busy_timeout_seconds:
        How long a writer waits on a locked database before the attempt is
        reported as ``StoreTransientFault``.
    """

    tier = StorageTier.PRIMARY

    def __init__(
        self,
        db_path: Path,
        *,
        ensure_schema: bool = True,
        busy_timeout_seconds: float = 5.0,
    ) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = busy_timeout_seconds
        if ensure_schema:
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                self._init_schema()
            except (OSError, StoreError) as exc:
                # The tier stays constructed; every call reports the fault.
                logger.warning("Primary proofs tier not initialised at %s: %s", self._db_path, exc)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn: sqlite3.Connection | None = None
        try:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._busy_timeout,
                check_same_thread=False,
            )
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.Error as exc:
            classified = classify_sqlite_error(exc)
            if classified is None:
                raise
            raise classified from exc
        finally:
            if conn is not None:
                conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_CREATE_PROOFS)
            conn.execute(_CREATE_IDX_OWNER)
            conn.commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_fingerprint(self, fingerprint: str) -> ProofRecord | None:
        """Return the record for *fingerprint*, or None."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM proofs WHERE file_hash = ?",
                (fingerprint,),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_by_owner(self, owner_id: str) -> list[ProofRecord]:
        """Return every record owned by *owner_id*, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM proofs WHERE owner_id = ? "
                "ORDER BY created_at DESC",
                (owner_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM proofs").fetchone()
        return row[0] if row else 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_if_absent(self, record: ProofRecord) -> SaveResult:
        """Insert *record* unless its fingerprint is already registered.

        Same owner already registered → ``persisted`` with the stored
        record (no-op).  Different owner → ``conflict`` with the stored
        record.
        """
        try:
            stored = self._insert(record)
        except StoreConflict as conflict:
            existing = conflict.existing or self.find_by_fingerprint(record.fingerprint)
            if existing is None:
                raise
            outcome = (
                SaveOutcome.PERSISTED
                if existing.owner_id == record.owner_id
                else SaveOutcome.CONFLICT
            )
            logger.info(
                "Primary tier: %s already registered to %s (%s)",
                record.fingerprint[:12],
                existing.owner_id,
                outcome.value,
            )
            return SaveResult(outcome=outcome, record=existing, tier=self.tier)

        return SaveResult(outcome=SaveOutcome.PERSISTED, record=stored, tier=self.tier)

    def _insert(self, record: ProofRecord) -> ProofRecord:
        now = _utcnow()
        stored = record.model_copy(update={"created_at": now, "updated_at": now})
        with self._connect() as conn:
            try:
                conn.execute(
                    f"INSERT INTO proofs (id, {_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(uuid.uuid4()),
                        stored.owner_id,
                        stored.content_id,
                        stored.content_type,
                        stored.filename,
                        stored.fingerprint,
                        stored.file_size_bytes,
                        stored.ledger_transaction_id,
                        stored.ledger_explorer_url,
                        stored.status.value,
                        stored.created_at.isoformat(),
                        stored.updated_at.isoformat(),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as exc:
                raise StoreConflict(record.fingerprint) from exc
        return stored

    def update_status(self, fingerprint: str, status: ProofStatus) -> ProofRecord | None:
        """Move a ``pending`` record to *status*.

        Confirmed and failed records are never changed.  Returns the record
        as stored afterwards, or None if the fingerprint is unknown.
        """
        with self._connect() as conn:
            conn.execute(
                "UPDATE proofs SET verification_status = ?, updated_at = ? "
                "WHERE file_hash = ? AND verification_status = ?",
                (
                    status.value,
                    _utcnow().isoformat(),
                    fingerprint,
                    ProofStatus.PENDING.value,
                ),
            )
            conn.commit()
        return self.find_by_fingerprint(fingerprint)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_record(row: tuple) -> ProofRecord:
        """Convert a SQLite row tuple to a ProofRecord."""
        (
            owner_id,
            content_id,
            content_type,
            filename,
            file_hash,
            file_size,
            transaction_id,
            explorer,
            status,
            created_at,
            updated_at,
        ) = row
        return ProofRecord(
            fingerprint=file_hash,
            owner_id=owner_id,
            content_id=content_id,
            content_type=content_type,
            filename=filename,
            file_size_bytes=file_size,
            ledger_transaction_id=transaction_id,
            ledger_explorer_url=explorer,
            status=ProofStatus(status),
            created_at=created_at,
            updated_at=updated_at,
        )
