"""Challenge Registry: the challenge/response/stake state machine.

Every challenge moves through exactly one transition:

    (none) --submit_challenge--> OPEN
    OPEN --respond_with_wrong_key / respond_with_proof--> RESOLVED (responded)
    OPEN --withdraw, once now >= expires_at--> RESOLVED (slashed, stake paid out)

Resolved records are terminal and immutable. Expiry is never scheduled;
it is recomputed from the clock on every call.

All mutating calls and reads run under one lock, inside a store
transaction that excludes other processes sharing the backend, and work
on a staged copy of the ledger state that is committed in a single
store call after every check has passed. Whichever of two racing calls
takes the lock first wins; the other sees the resolved record and fails with
AlreadyResolvedError.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any

from ..core.config import LedgerSettings, get_config
from ..core.exceptions import (
    AlreadyResolvedError,
    DuplicateChallengeError,
    InsufficientFundsError,
    InvalidProofError,
    InvalidResponseError,
    InvalidSignatureError,
    NotExpiredError,
    NotFoundError,
    UnauthorizedError,
    ValidationException,
)
from ..core.logging import ledger_fields
from .challenges import Challenge, ChallengeKind, Payload, Resolution, get_handler
from .clock import Clock, SystemClock
from .stake_pool import Payout, StakePool
from .store import LedgerState, LedgerStore, MemoryLedgerStore
from .verifier import ProofVerifier, RejectingProofVerifier

logger = logging.getLogger(__name__)

MAINTAINER_ROLE = "maintainer"


class ChallengeRegistry:
    """Owns the ledger state and enforces the challenge lifecycle.

    Args:
        store: Where committed state lives. Defaults to memory.
        clock: Source of ``now``. Defaults to wall-clock UTC.
        verifier: External proof verifier. Defaults to rejecting all proofs.
        settings: Protocol settings. Defaults to ``get_config()``.
    """

    def __init__(
        self,
        store: LedgerStore | None = None,
        *,
        clock: Clock | None = None,
        verifier: ProofVerifier | None = None,
        settings: LedgerSettings | None = None,
    ):
        self.settings = settings or get_config()
        self.store = store or MemoryLedgerStore()
        self.clock = clock or SystemClock()
        self.verifier = verifier or RejectingProofVerifier()
        self.challenge_period = timedelta(seconds=self.settings.challenge_period_seconds)
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _locked_state(self) -> Iterator[tuple[LedgerState, datetime]]:
        with self._lock, self.store.transaction():
            state = self.store.load()
            yield state, self._now(state)

    def _now(self, state: LedgerState) -> datetime:
        # Never let a clock that steps backwards re-open a closed window
        now = self.clock.now()
        if state.last_seen is not None and now < state.last_seen:
            return state.last_seen
        return now

    def _commit(self, state: LedgerState, now: datetime) -> LedgerState:
        committed = state.next_version(now)
        self.store.commit(committed)
        return committed

    @staticmethod
    def _require(state: LedgerState, challenge_id: str) -> Challenge:
        challenge = state.challenges.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)
        return challenge

    @staticmethod
    def _require_open(challenge: Challenge) -> None:
        if challenge.resolved:
            raise AlreadyResolvedError(
                f"Challenge {challenge.id} is already resolved ({challenge.resolution})",
                existing_id=challenge.id,
            )

    def _check_responder(self, state: LedgerState, caller: str) -> None:
        if self.settings.restrict_responders and caller != state.pool.depositor:
            raise UnauthorizedError(caller, MAINTAINER_ROLE)

    @staticmethod
    def _require_caller(caller: str) -> None:
        if not caller:
            raise ValidationException("Caller identity is required", field="caller")

    # -------------------------------------------------------------------------
    # Stake pool
    # -------------------------------------------------------------------------

    def fund(self, amount: int, depositor: str) -> StakePool:
        """Fund the stake pool. Accepted exactly once."""
        with self._locked_state() as (state, now):
            pool = state.pool.fund(amount, depositor, now)
            committed = self._commit(state.with_pool(pool), now)

        logger.info(
            "Stake pool funded with %d by %s",
            amount,
            depositor,
            extra=ledger_fields(amount=amount, depositor=depositor),
        )
        return committed.pool

    @property
    def pool(self) -> StakePool:
        with self._locked_state() as (state, _):
            return state.pool

    @property
    def balance(self) -> int:
        return self.pool.balance

    # -------------------------------------------------------------------------
    # Challenges
    # -------------------------------------------------------------------------

    def submit_challenge(self, kind: ChallengeKind | str, payload: Payload | bytes, caller: str) -> str:
        """Validate and open a challenge.

        Args:
            kind: Which maintainer obligation is disputed.
            payload: The kind's payload object or its canonical bytes.
            caller: Authenticated identity of the challenger.

        Returns:
            The content-derived challenge id (hex).

        Raises:
            InvalidPayloadError: Payload does not decode or has the wrong shape.
            InvalidSignatureError: A signature in the payload does not check out.
            DuplicateChallengeError: The same challenge is already open.
            AlreadyResolvedError: The same challenge was resolved and
                resubmission is disabled.
        """
        self._require_caller(caller)
        handler = get_handler(kind)
        validated = handler.validate(payload)

        with self._locked_state() as (state, now):
            existing = state.challenges.get(validated.challenge_id)
            round_ = 1
            history = state.history
            if existing is not None:
                if not existing.resolved:
                    raise DuplicateChallengeError(
                        f"Challenge {existing.id} is already open",
                        existing_id=existing.id,
                    )
                if not self.settings.allow_resubmission:
                    raise AlreadyResolvedError(
                        f"Challenge {existing.id} was already resolved ({existing.resolution})",
                        existing_id=existing.id,
                    )
                round_ = existing.round + 1
                history = history + (existing,)

            challenge = Challenge(
                id=validated.challenge_id,
                kind=validated.kind,
                payload=validated.payload,
                challenger=caller,
                log_id=validated.position.log_id,
                log_index=validated.position.index,
                created_at=now,
                expires_at=now + self.challenge_period,
                round=round_,
            )
            self._commit(state.with_challenge(challenge).with_history(history), now)

        logger.info(
            "Challenge %s accepted (%s, expires %s)",
            challenge.id,
            challenge.kind,
            challenge.expires_at.isoformat(),
            extra=ledger_fields(
                challenge_id=challenge.id,
                kind=challenge.kind.value,
                challenger=caller,
                signer=validated.signer_key,
                log_id=challenge.log_id,
                index=challenge.log_index,
                round=round_,
            ),
        )
        return challenge.id

    def respond_with_wrong_key(self, challenge_id: str, proof_of_wrong_key: bytes, caller: str) -> Challenge:
        """Dismiss a challenge whose statement was not signed by the log's key.

        Args:
            challenge_id: The open challenge.
            proof_of_wrong_key: The log's creation statement bytes.
            caller: Authenticated identity of the responder.

        Raises:
            NotFoundError, AlreadyResolvedError, UnauthorizedError,
            InvalidResponseError: The demonstration does not hold.
        """
        self._require_caller(caller)
        with self._locked_state() as (state, now):
            challenge = self._require(state, challenge_id)
            self._require_open(challenge)
            self._check_responder(state, caller)

            handler = get_handler(challenge.kind)
            try:
                handler.check_wrong_key(challenge, proof_of_wrong_key)
            except InvalidResponseError:
                logger.warning(
                    "Rejected wrong-key response for %s",
                    challenge_id,
                    extra=ledger_fields(challenge_id=challenge_id, responder=caller),
                )
                raise
            except InvalidSignatureError as e:
                raise InvalidResponseError(f"Challenge signature could not be re-checked: {e.message}") from e

            resolved = challenge.resolve(at=now, by=caller, resolution=Resolution.WRONG_KEY)
            self._commit(state.with_challenge(resolved), now)

        logger.info(
            "Challenge %s dismissed: statement not signed by the log key",
            challenge_id,
            extra=ledger_fields(challenge_id=challenge_id, responder=caller),
        )
        return resolved

    def respond_with_proof(self, challenge_id: str, proof_a: bytes, proof_b: bytes, caller: str) -> Challenge:
        """Answer a challenge with a proof checked by the proof verifier.

        Raises:
            NotFoundError, AlreadyResolvedError, UnauthorizedError,
            InvalidProofError: The verifier did not accept the proof.
        """
        self._require_caller(caller)
        with self._locked_state() as (state, now):
            challenge = self._require(state, challenge_id)
            self._require_open(challenge)
            self._check_responder(state, caller)

            handler = get_handler(challenge.kind)
            try:
                accepted = self.verifier.verify(challenge.kind, challenge.position, proof_a, proof_b) is True
            except Exception:
                logger.warning(
                    "Proof verifier raised for challenge %s; treating as rejection",
                    challenge_id,
                    exc_info=True,
                    extra=ledger_fields(challenge_id=challenge_id),
                )
                accepted = False

            if not accepted:
                logger.warning(
                    "Rejected %s proof for %s",
                    handler.proof_type,
                    challenge_id,
                    extra=ledger_fields(challenge_id=challenge_id, responder=caller),
                )
                raise InvalidProofError(
                    f"Proof verifier rejected the {handler.proof_type} proof for challenge {challenge_id}",
                    {"challenge_id": challenge_id, "proof_type": handler.proof_type.value},
                )

            resolved = challenge.resolve(at=now, by=caller, resolution=Resolution.PROOF)
            self._commit(state.with_challenge(resolved), now)

        logger.info(
            "Challenge %s answered with %s proof",
            challenge_id,
            handler.proof_type,
            extra=ledger_fields(challenge_id=challenge_id, responder=caller),
        )
        return resolved

    def withdraw(self, challenge_id: str, caller: str) -> Payout:
        """Slash the stake for an expired, unanswered challenge.

        The whole remaining pool balance is paid to the caller, or to the
        challenger when ``payout_recipient`` is "challenger".

        Raises:
            NotFoundError, NotExpiredError, AlreadyResolvedError,
            InsufficientFundsError: Fatal; the pool invariants are broken.
        """
        self._require_caller(caller)
        with self._locked_state() as (state, now):
            challenge = self._require(state, challenge_id)
            if not challenge.is_expired(now):
                raise NotExpiredError(challenge_id, challenge.expires_at.isoformat())
            self._require_open(challenge)

            recipient = challenge.challenger if self.settings.payout_recipient == "challenger" else caller
            try:
                pool, payout = state.pool.pay_out(state.pool.balance, recipient, challenge_id, now)
            except InsufficientFundsError:
                logger.critical(
                    "Stake pool cannot cover payout for %s; ledger invariants violated",
                    challenge_id,
                    extra=ledger_fields(challenge_id=challenge_id, balance=state.pool.balance),
                )
                raise

            resolved = challenge.resolve(at=now, by=caller, resolution=Resolution.SLASHED, payout=payout.amount)
            self._commit(state.with_challenge(resolved).with_pool(pool), now)

        logger.warning(
            "Stake slashed for challenge %s: %d paid to %s",
            challenge_id,
            payout.amount,
            recipient,
            extra=ledger_fields(challenge_id=challenge_id, amount=payout.amount, recipient=recipient),
        )
        return payout

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def challenge_responded(self, challenge_id: str) -> bool:
        with self._locked_state() as (state, _):
            return self._require(state, challenge_id).responded

    def challenge_expired(self, challenge_id: str) -> bool:
        with self._locked_state() as (state, now):
            return self._require(state, challenge_id).is_expired(now)

    def get_challenge(self, challenge_id: str) -> Challenge:
        with self._locked_state() as (state, _):
            return self._require(state, challenge_id)

    def list_challenges(self, open_only: bool = False) -> list[Challenge]:
        with self._locked_state() as (state, _):
            challenges = sorted(state.challenges.values(), key=lambda c: (c.created_at, c.id))
        if open_only:
            challenges = [c for c in challenges if not c.resolved]
        return challenges

    def snapshot(self) -> dict[str, Any]:
        """The observable state surface: per-challenge views plus the pool."""
        with self._locked_state() as (state, now):
            return {
                "version": state.version,
                "as_of": now.isoformat(),
                "balance": state.pool.balance,
                "depositor": state.pool.depositor,
                "challenges": [
                    {**c.public_view(), "expired": c.is_expired(now)}
                    for c in sorted(state.challenges.values(), key=lambda c: (c.created_at, c.id))
                ],
            }
