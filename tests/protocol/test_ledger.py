"""Tests for penalty_ledger.protocol.ledger.open_ledger."""

from __future__ import annotations

import pytest

from penalty_ledger.core.config import LedgerSettings
from penalty_ledger.core.exceptions import ConfigException
from penalty_ledger.protocol.challenges import ChallengeKind
from penalty_ledger.protocol.clock import SystemClock
from penalty_ledger.protocol.ledger import open_ledger
from penalty_ledger.protocol.store import JsonFileLedgerStore, MemoryLedgerStore
from penalty_ledger.protocol.verifier import RejectingProofVerifier


class TestOpenLedger:
    def test_defaults_from_config(self, clean_env):
        registry = open_ledger()
        assert isinstance(registry.store, MemoryLedgerStore)
        assert isinstance(registry.verifier, RejectingProofVerifier)
        assert isinstance(registry.clock, SystemClock)
        assert registry.challenge_period.total_seconds() == 3600

    def test_env_selects_file_store(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("PENALTY_STORE", "file")
        monkeypatch.setenv("PENALTY_STATE_PATH", str(tmp_path / "state.json"))
        registry = open_ledger()
        assert isinstance(registry.store, JsonFileLedgerStore)

    def test_explicit_parts_win(self, clean_env, clock):
        store = MemoryLedgerStore()
        registry = open_ledger(LedgerSettings(challenge_period_seconds=5), clock=clock, store=store)
        assert registry.store is store
        assert registry.clock is clock
        assert registry.challenge_period.total_seconds() == 5

    def test_bad_verifier_path(self, clean_env):
        with pytest.raises(ConfigException):
            open_ledger(LedgerSettings(proof_verifier="no_such_module_xyz:verify"))

    def test_file_ledger_survives_reopen(self, clean_env, tmp_path, clock, make_payload, maintainer_key):
        settings = LedgerSettings(store_backend="file", state_path=tmp_path / "state.json", challenge_period_seconds=60)

        first = open_ledger(settings, clock=clock)
        first.fund(10, "maintainer")
        cid = first.submit_challenge(ChallengeKind.LACK_OF_PROOF, make_payload(maintainer_key), "alice")

        clock.advance(60)
        second = open_ledger(settings, clock=clock)
        assert second.get_challenge(cid).challenger == "alice"
        assert second.withdraw(cid, "alice").amount == 10
        assert open_ledger(settings, clock=clock).balance == 0
