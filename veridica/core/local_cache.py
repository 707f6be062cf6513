"""Secondary proof tier: development-only local cache.

Same logical shape as the ``proofs`` table, keyed by ``file_hash``, held in
a process-scoped dict.  When a ``cache_path`` is given the dict is mirrored
to a JSON file so a development server keeps its proofs across restarts.

This tier is never constructed for production, and ``TieredProofStore``
refuses to consult it under a production ``StoragePolicy``.

File layout::

    .veridica/
        veridica_proofs.json    # {"proofs": [ {record}, ... ]}
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from veridica.core.errors import StoreTransientFault
from veridica.models.proofs import (
    ProofRecord,
    ProofStatus,
    SaveOutcome,
    SaveResult,
    StorageTier,
)

logger = logging.getLogger(__name__)


class LocalProofCache:
    """Process-scoped proof cache with optional JSON persistence.

    Parameters
    ----------
    cache_path:
        JSON file to mirror the cache into.  ``None`` keeps the cache purely
        in memory.
    """

    tier = StorageTier.SECONDARY

    def __init__(self, cache_path: Path | None = None) -> None:
        self._path = Path(cache_path) if cache_path is not None else None
        self._lock = threading.Lock()
        self._proofs: dict[str, ProofRecord] = {}
        if self._path is not None:
            self._load()

        logger.debug(
            "LocalProofCache initialized (path=%s, proofs=%d)",
            self._path,
            len(self._proofs),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_fingerprint(self, fingerprint: str) -> ProofRecord | None:
        with self._lock:
            return self._proofs.get(fingerprint)

    def list_by_owner(self, owner_id: str) -> list[ProofRecord]:
        with self._lock:
            owned = [p for p in self._proofs.values() if p.owner_id == owner_id]
        return sorted(owned, key=lambda p: p.created_at, reverse=True)

    def count(self) -> int:
        with self._lock:
            return len(self._proofs)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_if_absent(self, record: ProofRecord) -> SaveResult:
        """Check-and-insert under the cache lock."""
        with self._lock:
            existing = self._proofs.get(record.fingerprint)
            if existing is not None:
                outcome = (
                    SaveOutcome.PERSISTED
                    if existing.owner_id == record.owner_id
                    else SaveOutcome.CONFLICT
                )
                return SaveResult(outcome=outcome, record=existing, tier=self.tier)

            now = datetime.now(timezone.utc)
            stored = record.model_copy(update={"created_at": now, "updated_at": now})
            self._proofs[stored.fingerprint] = stored
            try:
                self._flush()
            except StoreTransientFault:
                del self._proofs[stored.fingerprint]
                raise

        logger.info("Secondary tier: cached proof %s", record.fingerprint[:12])
        return SaveResult(outcome=SaveOutcome.PERSISTED, record=stored, tier=self.tier)

    def update_status(self, fingerprint: str, status: ProofStatus) -> ProofRecord | None:
        """Move a ``pending`` record to *status*; other records are untouched."""
        with self._lock:
            existing = self._proofs.get(fingerprint)
            if existing is None or existing.status is not ProofStatus.PENDING:
                return existing
            updated = existing.model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc)}
            )
            self._proofs[fingerprint] = updated
            try:
                self._flush()
            except StoreTransientFault:
                self._proofs[fingerprint] = existing
                raise
        return updated

    def clear(self) -> None:
        """Drop every cached proof (development reset)."""
        with self._lock:
            self._proofs.clear()
            self._flush()
        logger.info("Secondary tier: cache cleared")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def storage_info(self) -> dict[str, Any]:
        """Return ``total_proofs`` and ``storage_bytes`` (0 when in-memory)."""
        size = 0
        if self._path is not None and self._path.exists():
            size = self._path.stat().st_size
        return {"total_proofs": self.count(), "storage_bytes": size}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        assert self._path is not None
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Secondary tier: ignoring unreadable cache %s: %s", self._path, exc)
            return
        items = data.get("proofs") if isinstance(data, dict) else None
        if not isinstance(items, list):
            logger.warning("Secondary tier: ignoring malformed cache %s", self._path)
            return
        for item in items:
            try:
                record = ProofRecord.model_validate(item)
            except ValidationError as exc:
                logger.warning(
                    "Secondary tier: skipping invalid cached proof in %s (%d errors)",
                    self._path,
                    exc.error_count(),
                )
                continue
            self._proofs[record.fingerprint] = record

    def _flush(self) -> None:
        """Write the cache to disk.  Caller holds the lock."""
        if self._path is None:
            return
        payload = {
            "proofs": [p.model_dump(mode="json") for p in self._proofs.values()]
        }
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            raise StoreTransientFault(f"Secondary tier cannot write {self._path}: {exc}") from exc
