"""Tests for the ownership resolver state machine."""

from __future__ import annotations

import logging
import time

import pytest

from veridica.bridge.ledger import InMemoryLedgerClient
from veridica.config import VeridicaConfig
from veridica.core.errors import (
    DataUnavailable,
    HashError,
    LedgerRejected,
    LedgerTimeout,
    LedgerUnavailable,
    StoreSchemaMissing,
    StoreTransientFault,
)
from veridica.core.events import ProofEventKind
from veridica.core.fingerprint import compute_fingerprint
from veridica.core.local_cache import LocalProofCache
from veridica.core.production_guard import ProductionConfigError
from veridica.core.resolver import UNAVAILABLE_MESSAGE, OwnershipResolver, build_resolver
from veridica.core.tiered_store import TieredProofStore
from veridica.models.proofs import (
    ProofStatus,
    RegistrationOutcome,
    RejectionReason,
    StorageTier,
)

CONTENT = b"\x89PNG fake image bytes"


class FlakyStore:
    """Wraps a TieredProofStore; ``save`` raises DataUnavailable *failures* times."""

    def __init__(self, inner: TieredProofStore, failures: int) -> None:
        self.inner = inner
        self.failures = failures
        self.save_calls = 0

    def find_by_fingerprint(self, fingerprint):
        return self.inner.find_by_fingerprint(fingerprint)

    def list_by_owner(self, owner_id):
        return self.inner.list_by_owner(owner_id)

    def save(self, record):
        self.save_calls += 1
        if self.save_calls <= self.failures:
            raise DataUnavailable(cause=StoreTransientFault("locked"))
        return self.inner.save(record)

    def confirm(self, saved):
        return self.inner.confirm(saved)


# ---------------------------------------------------------------------------
# Test: register_proof
# ---------------------------------------------------------------------------


class TestRegisterNew:
    def test_confirmed_new(self, make_resolver, ledger: InMemoryLedgerClient):
        resolver = make_resolver()
        result = resolver.register_proof(CONTENT, "image/png", "alice", filename="cat.png")

        assert result.outcome is RegistrationOutcome.CONFIRMED_NEW
        assert result.accepted
        assert result.fingerprint == compute_fingerprint(CONTENT)
        assert result.explorer_url.endswith(f"/tx/{result.transaction_id}")
        assert result.record.status is ProofStatus.CONFIRMED
        assert result.record.file_size_bytes == len(CONTENT)
        assert result.record.filename == "cat.png"
        assert result.unmirrored is False
        assert result.degraded is False
        assert ledger.register_calls == 1

    def test_record_is_persisted_on_primary(self, make_resolver, primary_store):
        result = make_resolver().register_proof(CONTENT, "image/png", "alice", content_id="c-1")
        stored = primary_store.find_by_fingerprint(result.fingerprint)
        assert stored is not None
        assert stored.owner_id == "alice"
        assert stored.content_id == "c-1"
        assert stored.ledger_transaction_id == result.transaction_id
        assert stored.status is ProofStatus.CONFIRMED

    def test_publishes_registered(self, make_resolver, recorded_events):
        bus, seen = recorded_events
        make_resolver(events=bus).register_proof(CONTENT, "image/png", "alice")
        assert [e.kind for e in seen] == [ProofEventKind.REGISTERED]

    def test_hash_error_for_non_bytes(self, make_resolver, ledger):
        with pytest.raises(HashError):
            make_resolver().register_proof("not bytes", "text/plain", "alice")
        assert ledger.register_calls == 0


class TestRegisterExisting:
    def test_same_owner_twice_is_idempotent(self, make_resolver, ledger: InMemoryLedgerClient):
        resolver = make_resolver()
        first = resolver.register_proof(CONTENT, "image/png", "alice")
        second = resolver.register_proof(CONTENT, "image/png", "alice")

        assert second.outcome is RegistrationOutcome.CONFIRMED_EXISTING
        assert second.transaction_id == first.transaction_id
        assert ledger.register_calls == 1

    def test_other_owner_is_conflict(self, make_resolver, ledger: InMemoryLedgerClient):
        resolver = make_resolver()
        first = resolver.register_proof(CONTENT, "image/png", "alice")
        second = resolver.register_proof(CONTENT, "image/png", "bob")

        assert second.outcome is RegistrationOutcome.REJECTED_CONFLICT
        assert second.rejection is RejectionReason.CONFLICT
        assert second.owner_public_handle == "@alice"
        assert second.registered_at == first.record.created_at
        assert ledger.register_calls == 1

    def test_conflict_exposes_no_proof_or_owner_id(self, make_resolver):
        resolver = make_resolver()
        resolver.register_proof(CONTENT, "image/png", "alice")
        conflict = resolver.register_proof(CONTENT, "image/png", "bob")
        assert conflict.record is None
        assert conflict.transaction_id is None
        assert conflict.explorer_url is None
        assert "alice" not in conflict.model_dump_json().replace("@alice", "")

    def test_conflict_event(self, make_resolver, recorded_events):
        bus, seen = recorded_events
        resolver = make_resolver(events=bus)
        resolver.register_proof(CONTENT, "image/png", "alice")
        resolver.register_proof(CONTENT, "image/png", "bob")
        assert seen[-1].kind is ProofEventKind.CONFLICT
        assert seen[-1].details == {"owner_public_handle": "@alice"}


class TestRegisterUnverifiable:
    def test_production_unavailable_is_rejected(
        self, make_resolver, failing_tier, prod_policy, ledger: InMemoryLedgerClient
    ):
        store = TieredProofStore(failing_tier(StoreSchemaMissing("gone")), policy=prod_policy)
        result = make_resolver(store=store).register_proof(CONTENT, "image/png", "alice")

        assert result.outcome is RegistrationOutcome.REJECTED_UNVERIFIABLE
        assert result.rejection is RejectionReason.UNVERIFIABLE
        assert result.message == UNAVAILABLE_MESSAGE
        assert ledger.register_calls == 0

    def test_message_leaks_no_tier_detail(self, make_resolver, failing_tier, prod_policy):
        store = TieredProofStore(
            failing_tier(StoreSchemaMissing("no such table: proofs")), policy=prod_policy
        )
        result = make_resolver(store=store).register_proof(CONTENT, "image/png", "alice")
        assert "proofs" not in result.message
        assert "table" not in result.message

    def test_unverifiable_event(self, make_resolver, failing_tier, prod_policy, recorded_events):
        bus, seen = recorded_events
        store = TieredProofStore(failing_tier(StoreSchemaMissing("gone")), policy=prod_policy)
        make_resolver(store=store, events=bus).register_proof(CONTENT, "image/png", "alice")
        assert [e.kind for e in seen] == [ProofEventKind.UNVERIFIABLE]

    def test_both_development_tiers_down_is_rejected(
        self, make_resolver, failing_tier, dev_policy, ledger: InMemoryLedgerClient
    ):
        store = TieredProofStore(
            failing_tier(StoreTransientFault("locked")),
            failing_tier(StoreTransientFault("disk"), StorageTier.SECONDARY),
            policy=dev_policy,
        )
        result = make_resolver(store=store).register_proof(CONTENT, "image/png", "alice")
        assert result.outcome is RegistrationOutcome.REJECTED_UNVERIFIABLE
        assert ledger.register_calls == 0


class TestRegisterLedgerFailures:
    def test_ledger_unavailable_propagates_and_persists_nothing(
        self, make_resolver, ledger: InMemoryLedgerClient, primary_store
    ):
        ledger.available = False
        with pytest.raises(LedgerUnavailable):
            make_resolver().register_proof(CONTENT, "image/png", "alice")
        assert primary_store.count() == 0

    def test_ledger_rejected_is_terminal(self, make_resolver, primary_store):
        class RejectingLedger(InMemoryLedgerClient):
            def register(self, *args, **kwargs):
                raise LedgerRejected("overspend")

        with pytest.raises(LedgerRejected):
            make_resolver(ledger_client=RejectingLedger()).register_proof(
                CONTENT, "image/png", "alice"
            )
        assert primary_store.count() == 0

    def test_slow_ledger_times_out(self, make_resolver, primary_store):
        slow = InMemoryLedgerClient(latency_seconds=0.5)
        resolver = make_resolver(ledger_client=slow, ledger_timeout_seconds=0.05)
        started = time.monotonic()
        with pytest.raises(LedgerTimeout):
            resolver.register_proof(CONTENT, "image/png", "alice")
        assert time.monotonic() - started < 0.5
        assert primary_store.count() == 0

    def test_timeout_is_distinct_from_rejection(self):
        assert issubclass(LedgerTimeout, LedgerUnavailable)
        assert not issubclass(LedgerTimeout, LedgerRejected)


class TestMirrorFailures:
    def test_retry_then_success(self, make_resolver, dev_store, ledger):
        flaky = FlakyStore(dev_store, failures=2)
        result = make_resolver(store=flaky, mirror_retry_attempts=3).register_proof(
            CONTENT, "image/png", "alice"
        )
        assert result.outcome is RegistrationOutcome.CONFIRMED_NEW
        assert result.unmirrored is False
        assert flaky.save_calls == 3
        assert ledger.register_calls == 1

    def test_exhausted_retries_is_unmirrored(self, make_resolver, dev_store, ledger, recorded_events):
        bus, seen = recorded_events
        flaky = FlakyStore(dev_store, failures=10)
        result = make_resolver(store=flaky, mirror_retry_attempts=2, events=bus).register_proof(
            CONTENT, "image/png", "alice"
        )
        assert result.outcome is RegistrationOutcome.CONFIRMED_NEW
        assert result.unmirrored is True
        assert result.transaction_id == result.record.ledger_transaction_id
        assert result.record.status is ProofStatus.PENDING
        assert flaky.save_calls == 3
        assert ledger.register_calls == 1
        assert seen[-1].kind is ProofEventKind.UNMIRRORED
        assert seen[-1].details["record"]["fingerprint"] == result.fingerprint

    def test_reconcile_persists_without_ledger_call(self, make_resolver, dev_store, ledger, primary_store):
        flaky = FlakyStore(dev_store, failures=10)
        unmirrored = make_resolver(store=flaky, mirror_retry_attempts=0).register_proof(
            CONTENT, "image/png", "alice"
        )
        assert primary_store.count() == 0

        reconciled = make_resolver().reconcile(unmirrored.record)
        assert reconciled.outcome is RegistrationOutcome.CONFIRMED_NEW
        assert reconciled.unmirrored is False
        assert reconciled.transaction_id == unmirrored.transaction_id
        assert primary_store.find_by_fingerprint(unmirrored.fingerprint).status is ProofStatus.CONFIRMED
        assert ledger.register_calls == 1

    def test_reconcile_publishes_reconciled(self, make_resolver, make_record, recorded_events):
        bus, seen = recorded_events
        make_resolver(events=bus).reconcile(make_record())
        assert [e.kind for e in seen] == [ProofEventKind.RECONCILED]

    def test_reconcile_after_other_owner_won(self, make_resolver, make_record, dev_store):
        dev_store.save(make_record(owner_id="bob"))
        result = make_resolver().reconcile(make_record(owner_id="alice"))
        assert result.outcome is RegistrationOutcome.REJECTED_CONFLICT
        assert result.owner_public_handle == "@bob"

    def test_non_recoverable_save_error_is_logged_and_raised(self, make_resolver, dev_store, caplog):
        class BrokenStore(FlakyStore):
            def save(self, record):
                raise ValueError("schema drift")

        with caplog.at_level(logging.ERROR, logger="veridica.core.resolver"):
            with pytest.raises(ValueError):
                make_resolver(store=BrokenStore(dev_store, 0)).register_proof(
                    CONTENT, "image/png", "alice"
                )
        assert "could not be stored" in caplog.text


class TestRaceOutcomes:
    def test_lost_race_is_conflict_against_winner(self, make_resolver, dev_store, make_record, ledger):
        """Another owner's record lands between existence check and save."""
        fingerprint = compute_fingerprint(CONTENT)

        class RacingStore(FlakyStore):
            def save(self, record):
                self.inner.save(make_record(CONTENT, owner_id="bob", ledger_transaction_id="TX-BOB"))
                return self.inner.save(record)

        result = make_resolver(store=RacingStore(dev_store, 0)).register_proof(
            CONTENT, "image/png", "alice"
        )
        assert result.outcome is RegistrationOutcome.REJECTED_CONFLICT
        assert result.owner_public_handle == "@bob"
        assert dev_store.find_by_fingerprint(fingerprint).record.owner_id == "bob"
        assert ledger.register_calls == 1

    def test_same_owner_race_keeps_first_transaction(self, make_resolver, dev_store, make_record):
        class RacingStore(FlakyStore):
            def save(self, record):
                self.inner.save(make_record(CONTENT, owner_id="alice", ledger_transaction_id="TX-FIRST"))
                return self.inner.save(record)

        result = make_resolver(store=RacingStore(dev_store, 0)).register_proof(
            CONTENT, "image/png", "alice"
        )
        assert result.outcome is RegistrationOutcome.CONFIRMED_EXISTING
        assert result.transaction_id == "TX-FIRST"


# ---------------------------------------------------------------------------
# Test: check_ownership
# ---------------------------------------------------------------------------


class TestCheckOwnership:
    def test_new_content(self, make_resolver):
        result = make_resolver().check_ownership(CONTENT, "alice")
        assert result.exists is False
        assert result.is_owner is False
        assert result.verifiable is True
        assert result.fingerprint == compute_fingerprint(CONTENT)

    def test_owner_sees_proof(self, make_resolver):
        resolver = make_resolver()
        registered = resolver.register_proof(CONTENT, "image/png", "alice")
        result = resolver.check_ownership(CONTENT, "alice")
        assert result.exists is True
        assert result.is_owner is True
        assert result.owner_id == "alice"
        assert result.proof_ref.transaction_id == registered.transaction_id

    def test_other_sees_handle_only(self, make_resolver):
        resolver = make_resolver()
        registered = resolver.register_proof(CONTENT, "image/png", "alice")
        result = resolver.check_ownership(CONTENT, "bob")
        assert result.exists is True
        assert result.is_owner is False
        assert result.owner_id is None
        assert result.proof_ref is None
        assert result.owner_public_handle == "@alice"
        assert result.registered_at == registered.record.created_at

    def test_unavailable_in_production(self, make_resolver, failing_tier, prod_policy):
        store = TieredProofStore(failing_tier(StoreSchemaMissing("gone")), policy=prod_policy)
        result = make_resolver(store=store).check_ownership(CONTENT, "alice")
        assert result.verifiable is False
        assert result.error == UNAVAILABLE_MESSAGE
        assert result.is_owner is False

    def test_both_development_tiers_down(self, make_resolver, failing_tier, dev_policy):
        store = TieredProofStore(
            failing_tier(StoreTransientFault("locked")),
            failing_tier(StoreTransientFault("disk"), StorageTier.SECONDARY),
            policy=dev_policy,
        )
        result = make_resolver(store=store).check_ownership(CONTENT, "alice")
        assert result.verifiable is False
        assert result.error == UNAVAILABLE_MESSAGE

    def test_degraded_in_development(self, make_resolver, failing_tier, dev_policy):
        cache = LocalProofCache()
        store = TieredProofStore(failing_tier(StoreSchemaMissing("gone")), cache, policy=dev_policy)
        resolver = make_resolver(store=store)
        resolver.register_proof(CONTENT, "image/png", "alice")
        result = resolver.check_ownership(CONTENT, "alice")
        assert result.is_owner is True
        assert result.degraded is True
        assert cache.count() == 1


# ---------------------------------------------------------------------------
# Test: verify_proof / list_proofs / wiring
# ---------------------------------------------------------------------------


class TestVerifyAndList:
    def test_verify_registered(self, make_resolver):
        resolver = make_resolver()
        registered = resolver.register_proof(CONTENT, "image/png", "alice")
        verification = resolver.verify_proof(registered.transaction_id)
        assert verification.confirmed is True
        assert verification.note["hash"] == registered.fingerprint

    def test_verify_timeout(self, make_resolver):
        slow = InMemoryLedgerClient(latency_seconds=0.5)
        with pytest.raises(LedgerTimeout):
            make_resolver(ledger_client=slow, ledger_timeout_seconds=0.05).verify_proof("TX")

    def test_list_proofs(self, make_resolver):
        resolver = make_resolver()
        resolver.register_proof(b"one", "text/plain", "alice")
        resolver.register_proof(b"two", "text/plain", "alice")
        resolver.register_proof(b"three", "text/plain", "bob")
        assert len(resolver.list_proofs("alice")) == 2

    def test_list_proofs_unavailable_in_production(self, make_resolver, failing_tier, prod_policy):
        store = TieredProofStore(failing_tier(StoreSchemaMissing("gone")), policy=prod_policy)
        with pytest.raises(DataUnavailable):
            make_resolver(store=store).list_proofs("alice")


class TestFromConfig:
    def test_development_wiring(self, tmp_dir):
        config = VeridicaConfig(
            primary_db_path=tmp_dir / "proofs.db",
            secondary_cache_path=tmp_dir / "cache.json",
        )
        resolver = build_resolver(config)
        assert isinstance(resolver, OwnershipResolver)
        assert resolver.store.policy.secondary_enabled is True
        assert resolver.store.has_secondary is True
        assert isinstance(resolver.ledger, InMemoryLedgerClient)

    def test_development_without_secondary(self, tmp_dir):
        config = VeridicaConfig(primary_db_path=tmp_dir / "proofs.db", secondary_enabled=False)
        assert OwnershipResolver.from_config(config).store.has_secondary is False

    def test_production_guard_runs_first(self, tmp_dir):
        config = VeridicaConfig(environment="production", primary_db_path=tmp_dir / "proofs.db")
        with pytest.raises(ProductionConfigError):
            OwnershipResolver.from_config(config)

    def test_round_trip_through_wiring(self, tmp_dir):
        config = VeridicaConfig(primary_db_path=tmp_dir / "proofs.db", secondary_cache_path=None)
        resolver = build_resolver(config)
        result = resolver.register_proof(CONTENT, "image/png", "alice")
        assert result.outcome is RegistrationOutcome.CONFIRMED_NEW
        assert resolver.store.find_by_fingerprint(result.fingerprint).tier is StorageTier.PRIMARY
