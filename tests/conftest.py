"""Shared test fixtures for Veridica."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from veridica.bridge.directory import MappingOwnerDirectory
from veridica.bridge.ledger import InMemoryLedgerClient
from veridica.core.errors import StoreUnavailableError
from veridica.core.events import ProofEvent, ProofEventBus
from veridica.core.fingerprint import compute_fingerprint
from veridica.core.local_cache import LocalProofCache
from veridica.core.primary_store import SqliteProofStore
from veridica.core.resolver import OwnershipResolver
from veridica.core.tiered_store import TieredProofStore
from veridica.models.policy import StoragePolicy
from veridica.models.proofs import ProofRecord, StorageTier


class RecordingTier:
    """Wraps a tier and records every method called on it."""

    def __init__(self, inner: Any) -> None:
        self.inner = inner
        self.tier = inner.tier
        self.calls: list[str] = []

    def find_by_fingerprint(self, fingerprint):
        self.calls.append("find_by_fingerprint")
        return self.inner.find_by_fingerprint(fingerprint)

    def insert_if_absent(self, record):
        self.calls.append("insert_if_absent")
        return self.inner.insert_if_absent(record)

    def update_status(self, fingerprint, status):
        self.calls.append("update_status")
        return self.inner.update_status(fingerprint, status)

    def list_by_owner(self, owner_id):
        self.calls.append("list_by_owner")
        return self.inner.list_by_owner(owner_id)

    def count(self):
        self.calls.append("count")
        return self.inner.count()


class FailingTier:
    """A tier whose every operation raises *error*."""

    def __init__(self, error: StoreUnavailableError, tier: StorageTier = StorageTier.PRIMARY) -> None:
        self.error = error
        self.tier = tier
        self.calls = 0

    def _fail(self, *args: Any, **kwargs: Any) -> Any:
        self.calls += 1
        raise self.error

    find_by_fingerprint = _fail
    insert_if_absent = _fail
    update_status = _fail
    list_by_owner = _fail
    count = _fail


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test databases and caches."""
    return tmp_path


@pytest.fixture
def primary_store(tmp_dir: Path) -> SqliteProofStore:
    """Provide a fresh Primary tier backed by a temp SQLite database."""
    return SqliteProofStore(tmp_dir / "proofs.db")


@pytest.fixture
def schemaless_primary(tmp_dir: Path) -> SqliteProofStore:
    """A Primary tier whose ``proofs`` table was never created."""
    return SqliteProofStore(tmp_dir / "empty.db", ensure_schema=False)


@pytest.fixture
def local_cache() -> LocalProofCache:
    """Provide an in-memory Secondary tier."""
    return LocalProofCache()


@pytest.fixture
def ledger() -> InMemoryLedgerClient:
    """Provide a fresh in-memory ledger."""
    return InMemoryLedgerClient()


@pytest.fixture
def dev_policy() -> StoragePolicy:
    return StoragePolicy.development()


@pytest.fixture
def prod_policy() -> StoragePolicy:
    return StoragePolicy.production()


@pytest.fixture
def dev_store(
    primary_store: SqliteProofStore,
    local_cache: LocalProofCache,
    dev_policy: StoragePolicy,
) -> TieredProofStore:
    """Development store: healthy Primary, in-memory Secondary."""
    return TieredProofStore(primary_store, local_cache, policy=dev_policy)


@pytest.fixture
def directory() -> MappingOwnerDirectory:
    return MappingOwnerDirectory({"alice": "@alice", "bob": "@bob"})


@pytest.fixture
def recorded_events() -> tuple[ProofEventBus, list[ProofEvent]]:
    """An event bus plus the list every published event lands in."""
    bus = ProofEventBus()
    seen: list[ProofEvent] = []
    bus.subscribe_all(seen.append)
    return bus, seen


@pytest.fixture
def recording_tier() -> Callable[[Any], RecordingTier]:
    """Factory fixture: wrap a tier so its calls can be asserted."""
    return RecordingTier


@pytest.fixture
def failing_tier() -> Callable[..., FailingTier]:
    """Factory fixture: a tier that raises the given error on every call."""
    return FailingTier


@pytest.fixture
def make_resolver(
    dev_store: TieredProofStore,
    ledger: InMemoryLedgerClient,
    directory: MappingOwnerDirectory,
) -> Callable[..., OwnershipResolver]:
    """Factory fixture: an OwnershipResolver with no retry backoff."""

    def _factory(
        store: TieredProofStore | None = None,
        ledger_client: Any = None,
        **overrides: Any,
    ) -> OwnershipResolver:
        kwargs: dict[str, Any] = {
            "directory": directory,
            "mirror_retry_backoff_seconds": 0.0,
            "ledger_timeout_seconds": 5.0,
        }
        kwargs.update(overrides)
        return OwnershipResolver(
            store if store is not None else dev_store,
            ledger_client if ledger_client is not None else ledger,
            **kwargs,
        )

    return _factory


@pytest.fixture
def make_record() -> Callable[..., ProofRecord]:
    """Factory fixture: build a ProofRecord with sensible defaults."""

    def _factory(
        content: bytes = b"sample content",
        owner_id: str = "alice",
        **overrides: Any,
    ) -> ProofRecord:
        fields: dict[str, Any] = {
            "fingerprint": compute_fingerprint(content),
            "owner_id": owner_id,
            "content_type": "text/plain",
            "filename": "sample.txt",
            "file_size_bytes": len(content),
            "ledger_transaction_id": f"TX-{owner_id}-{len(content)}",
            "ledger_explorer_url": "https://explorer.local/tx/TX",
        }
        fields.update(overrides)
        return ProofRecord(**fields)

    return _factory
