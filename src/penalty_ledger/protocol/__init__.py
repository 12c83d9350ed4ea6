"""Penalty ledger protocol: wire formats, signatures, challenges and the registry."""

from .challenges import (
    AppendStatementPayload,
    Challenge,
    ChallengeKind,
    LackOfProofPayload,
    LogPositionPayload,
    ProofType,
    Resolution,
    derive_challenge_id,
    get_handler,
)
from .clock import Clock, ManualClock, SystemClock
from .ledger import open_ledger
from .registry import ChallengeRegistry
from .signatures import SigningKey, recover_public_key, verify_signature
from .stake_pool import Payout, StakePool
from .store import JsonFileLedgerStore, LedgerState, LedgerStore, MemoryLedgerStore, get_ledger_store
from .verifier import CallableProofVerifier, LogPosition, ProofVerifier, RejectingProofVerifier, load_proof_verifier
from .wire import CreateLogStatement, LogStatement, SignedCreateLogStatement, SignedLogStatement, log_id_for

__all__ = [
    # Challenges
    "AppendStatementPayload",
    "Challenge",
    "ChallengeKind",
    "LackOfProofPayload",
    "LogPositionPayload",
    "ProofType",
    "Resolution",
    "derive_challenge_id",
    "get_handler",
    # Registry
    "ChallengeRegistry",
    "open_ledger",
    "Clock",
    "ManualClock",
    "SystemClock",
    # Stake
    "Payout",
    "StakePool",
    # Storage
    "JsonFileLedgerStore",
    "LedgerState",
    "LedgerStore",
    "MemoryLedgerStore",
    "get_ledger_store",
    # Verification
    "CallableProofVerifier",
    "LogPosition",
    "ProofVerifier",
    "RejectingProofVerifier",
    "load_proof_verifier",
    "SigningKey",
    "recover_public_key",
    "verify_signature",
    # Wire
    "CreateLogStatement",
    "LogStatement",
    "SignedCreateLogStatement",
    "SignedLogStatement",
    "log_id_for",
]
