"""Assemble a ready-to-use ChallengeRegistry from settings."""

from __future__ import annotations

import logging

from ..core.config import LedgerSettings, get_config
from .clock import Clock, SystemClock
from .registry import ChallengeRegistry
from .store import LedgerStore, get_ledger_store
from .verifier import ProofVerifier, load_proof_verifier

logger = logging.getLogger(__name__)


def open_ledger(
    settings: LedgerSettings | None = None,
    *,
    clock: Clock | None = None,
    verifier: ProofVerifier | None = None,
    store: LedgerStore | None = None,
) -> ChallengeRegistry:
    """Open a ledger using the configured store and proof verifier.

    Explicit ``clock``, ``verifier`` and ``store`` arguments take precedence
    over what the settings select.

    Raises:
        ConfigException: If the configured proof verifier cannot be loaded.
    """
    settings = settings or get_config()
    if store is None:
        store = get_ledger_store(settings)
    if verifier is None:
        verifier = load_proof_verifier(settings.proof_verifier)

    registry = ChallengeRegistry(
        store,
        clock=clock or SystemClock(),
        verifier=verifier,
        settings=settings,
    )
    logger.debug(
        "Opened ledger (period=%ss, verifier=%s, store=%s)",
        settings.challenge_period_seconds,
        settings.proof_verifier,
        type(store).__name__,
    )
    return registry
