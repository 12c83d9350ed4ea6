"""Global test fixtures for the penalty ledger test suite."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

import pytest

from penalty_ledger.core.config import LedgerSettings, clear_config_cache
from penalty_ledger.protocol.challenges import (
    AppendStatementPayload,
    LackOfProofPayload,
    LogPositionPayload,
)
from penalty_ledger.protocol.clock import ManualClock
from penalty_ledger.protocol.registry import ChallengeRegistry
from penalty_ledger.protocol.signatures import SigningKey
from penalty_ledger.protocol.store import MemoryLedgerStore
from penalty_ledger.protocol.wire import CreateLogStatement, LogStatement, SignedLogStatement

CHALLENGE_PERIOD = 60
MAINTAINER = "maintainer"
CHALLENGER = "alice"

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all PENALTY_ environment variables and reset cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("PENALTY_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def restore_root_logging():
    """Undo configure_logging() changes made by a test."""
    root = logging.getLogger()

    def ours(handler: logging.Handler) -> bool:
        # pytest installs and removes its own capture handlers per phase
        return not type(handler).__module__.startswith("_pytest")

    handlers = [h for h in root.handlers if ours(h)]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if ours(handler) and handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


# ============================================================================
# Keys and logs
# ============================================================================


@pytest.fixture
def maintainer_key() -> SigningKey:
    return SigningKey(bytes.fromhex("11" * 32))


@pytest.fixture
def attacker_key() -> SigningKey:
    return SigningKey(bytes.fromhex("22" * 32))


@pytest.fixture
def create_log(maintainer_key) -> CreateLogStatement:
    """Creation statement of a log controlled by the maintainer key."""
    return CreateLogStatement(
        controlling_key=maintainer_key.compressed_public_key,
        initial_statement=b"genesis",
    )


@pytest.fixture
def log_id(create_log) -> bytes:
    return create_log.log_id


@pytest.fixture
def make_payload(log_id) -> Callable[..., LackOfProofPayload]:
    """Factory for signed challenge payloads.

    By default the statement goes into the maintainer's log. Pass
    ``commitment`` to build an AppendStatementPayload instead.
    """

    def _make(
        key: SigningKey,
        index: int = 1,
        statement: bytes = b"hello",
        *,
        target_log: bytes | None = None,
        commitment: bytes | None = None,
    ) -> LackOfProofPayload:
        ls = LogStatement(log_id=target_log or log_id, index=index, statement=statement)
        sls = SignedLogStatement(signature=key.sign(ls.to_bytes()), statement=ls)
        sig = key.sign_recoverable(ls.signing_digest())
        fields = {
            "signed_statement": sls.to_bytes(),
            "public_key": key.public_key,
            "v": sig.v,
            "r": sig.r,
            "s": sig.s,
        }
        if commitment is not None:
            return AppendStatementPayload(**fields, commitment=commitment)
        return LackOfProofPayload(**fields)

    return _make


@pytest.fixture
def position_payload(log_id) -> LogPositionPayload:
    return LogPositionPayload(log_id=log_id, index=3, commitment=b"\xaa" * 32)


# ============================================================================
# Registry
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_registry(clock, clean_env) -> Callable[..., ChallengeRegistry]:
    """Build a registry on a memory store with the manual clock."""

    def _make(verifier=None, store=None, **overrides) -> ChallengeRegistry:
        overrides.setdefault("challenge_period_seconds", CHALLENGE_PERIOD)
        return ChallengeRegistry(
            store or MemoryLedgerStore(),
            clock=clock,
            verifier=verifier,
            settings=LedgerSettings(**overrides),
        )

    return _make


@pytest.fixture
def registry(make_registry) -> ChallengeRegistry:
    return make_registry()


@pytest.fixture
def funded_registry(registry) -> ChallengeRegistry:
    registry.fund(10, MAINTAINER)
    return registry
