"""Challenge kinds, payloads and records.

Four kinds of challenge share one lifecycle. What differs per kind is
the payload shape, how it is validated, how its id is derived and which
responses can settle it. Those differences live in one handler per kind,
looked up through ``KIND_HANDLERS``; the registry never branches on kind
itself.

Kinds:
- LACK_OF_PROOF: "here is a statement you signed; you never proved it is
  in your log". Settled by an inclusion proof or a wrong-key dismissal.
- APPEND_STATEMENT: "you failed to append my signed statement by this
  commitment". Settled the same way.
- PROOF_OF_INCLUSION / PROOF_OF_NON_INCLUSION: "prove what is (or is not)
  at this log position under this commitment". Settled by a proof only.
"""

from __future__ import annotations

import hashlib
import io
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.exceptions import InvalidPayloadError, InvalidResponseError, WireFormatError
from .signatures import (
    UNCOMPRESSED_KEY_SIZE,
    compress_public_key,
    load_public_key,
    recover_public_key,
    verify_recoverable,
    verify_signature,
)
from .verifier import LogPosition
from .wire import (
    CreateLogStatement,
    SignedLogStatement,
    read_varbytes,
    read_varint,
    write_varbytes,
    write_varint,
)

MAX_SIGNED_STATEMENT_SIZE = 512
MAX_COMMITMENT_SIZE = 4096
MAX_LOG_INDEX = 0xFFFFFFFFFFFFFFFF


class ChallengeKind(StrEnum):
    LACK_OF_PROOF = "lack_of_proof"
    APPEND_STATEMENT = "append_statement"
    PROOF_OF_INCLUSION = "proof_of_inclusion"
    PROOF_OF_NON_INCLUSION = "proof_of_non_inclusion"


class ProofType(StrEnum):
    INCLUSION = "inclusion"
    NON_INCLUSION = "non_inclusion"


class Resolution(StrEnum):
    """How a challenge reached its terminal state."""

    WRONG_KEY = "wrong_key"  # Maintainer showed the accusation was not signed by the log key
    PROOF = "proof"  # Maintainer produced the demanded proof
    SLASHED = "slashed"  # Window expired unanswered and the stake was withdrawn


# =============================================================================
# PAYLOADS
# =============================================================================


def _read_fixed(buf: io.BytesIO, size: int, name: str) -> bytes:
    data = buf.read(size)
    if len(data) != size:
        raise InvalidPayloadError(f"Payload truncated in {name}", field=name)
    return data


def _ensure_consumed(buf: io.BytesIO) -> None:
    if buf.read(1):
        raise InvalidPayloadError("Trailing data after payload")


@dataclass(frozen=True)
class LackOfProofPayload:
    """A signed log statement, the key claimed to have signed it, and a
    recoverable signature by that key over the statement."""

    signed_statement: bytes
    public_key: bytes
    v: int
    r: bytes
    s: bytes

    def _write_signed_part(self, buf: io.BytesIO) -> None:
        write_varbytes(buf, self.signed_statement)
        buf.write(self.public_key)
        buf.write(bytes([self.v]))
        buf.write(self.r)
        buf.write(self.s)

    @staticmethod
    def _read_signed_part(buf: io.BytesIO) -> dict[str, Any]:
        return {
            "signed_statement": read_varbytes(buf, MAX_SIGNED_STATEMENT_SIZE, "signed_statement"),
            "public_key": _read_fixed(buf, UNCOMPRESSED_KEY_SIZE, "public_key"),
            "v": _read_fixed(buf, 1, "v")[0],
            "r": _read_fixed(buf, 32, "r"),
            "s": _read_fixed(buf, 32, "s"),
        }

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self._write_signed_part(buf)
        return buf.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> LackOfProofPayload:
        buf = io.BytesIO(data)
        fields = cls._read_signed_part(buf)
        _ensure_consumed(buf)
        return cls(**fields)


@dataclass(frozen=True)
class AppendStatementPayload(LackOfProofPayload):
    """A signed statement the maintainer should have appended by ``commitment``."""

    commitment: bytes = b""

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        self._write_signed_part(buf)
        write_varbytes(buf, self.commitment)
        return buf.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> AppendStatementPayload:
        buf = io.BytesIO(data)
        fields = cls._read_signed_part(buf)
        fields["commitment"] = read_varbytes(buf, MAX_COMMITMENT_SIZE, "commitment")
        _ensure_consumed(buf)
        return cls(**fields)


@dataclass(frozen=True)
class LogPositionPayload:
    """A log position and the anchor commitment it is claimed under."""

    log_id: bytes
    index: int
    commitment: bytes

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        buf.write(self.log_id)
        write_varint(buf, self.index)
        write_varbytes(buf, self.commitment)
        return buf.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> LogPositionPayload:
        buf = io.BytesIO(data)
        log_id = _read_fixed(buf, 32, "log_id")
        index = read_varint(buf)
        commitment = read_varbytes(buf, MAX_COMMITMENT_SIZE, "commitment")
        _ensure_consumed(buf)
        return cls(log_id=log_id, index=index, commitment=commitment)


Payload = LackOfProofPayload | AppendStatementPayload | LogPositionPayload


@dataclass(frozen=True)
class ValidatedChallenge:
    """Result of validating a payload: everything the registry stores."""

    kind: ChallengeKind
    challenge_id: str
    payload: bytes
    position: LogPosition
    signer_key: bytes | None = None


# =============================================================================
# PER-KIND HANDLERS
# =============================================================================


def derive_challenge_id(log_id: bytes, body: bytes) -> str:
    """Content-derived id: SHA-256(log_id | SHA-256(body)), hex encoded."""
    inner = hashlib.sha256(body).digest()
    return hashlib.sha256(log_id + inner).hexdigest()


class KindHandler:
    """Validation and response rules for one challenge kind."""

    kind: ChallengeKind
    payload_type: type
    proof_type: ProofType

    def decode(self, payload: Payload | bytes) -> Payload:
        if isinstance(payload, bytes | bytearray):
            try:
                return self.payload_type.from_bytes(bytes(payload))
            except WireFormatError as e:
                raise InvalidPayloadError(f"Malformed {self.kind} payload: {e.message}", field=e.field) from e
        if type(payload) is not self.payload_type:
            raise InvalidPayloadError(
                f"{self.kind} expects a {self.payload_type.__name__}, got {type(payload).__name__}",
                field="payload",
            )
        return payload

    def validate(self, payload: Payload | bytes) -> ValidatedChallenge:
        raise NotImplementedError

    def check_wrong_key(self, challenge: Challenge, proof: bytes) -> None:
        raise InvalidResponseError(f"{self.kind} challenges cannot be dismissed with a wrong-key response")


class SignedStatementHandler(KindHandler):
    """Kinds whose payload quotes a statement signed by the accused key."""

    proof_type = ProofType.INCLUSION

    def __init__(self, kind: ChallengeKind, payload_type: type, id_tag: bytes = b""):
        self.kind = kind
        self.payload_type = payload_type
        self._id_tag = id_tag

    def _id_body(self, payload: LackOfProofPayload) -> bytes:
        if not self._id_tag:
            return payload.signed_statement
        buf = io.BytesIO()
        buf.write(self._id_tag)
        write_varbytes(buf, payload.commitment)  # type: ignore[attr-defined]
        buf.write(payload.signed_statement)
        return buf.getvalue()

    def validate(self, payload: Payload | bytes) -> ValidatedChallenge:
        payload = self.decode(payload)

        if len(payload.public_key) != UNCOMPRESSED_KEY_SIZE or payload.public_key[0] != 0x04:
            raise InvalidPayloadError("public_key must be a 65 byte uncompressed key", field="public_key")
        if len(payload.r) != 32 or len(payload.s) != 32:
            raise InvalidPayloadError("r and s must be 32 bytes each", field="signature")
        if self._id_tag and not payload.commitment:
            raise InvalidPayloadError("commitment must not be empty", field="commitment")
        try:
            sls = SignedLogStatement.from_bytes(payload.signed_statement)
        except WireFormatError as e:
            raise InvalidPayloadError(f"signed_statement does not decode: {e.message}", field="signed_statement") from e

        # Raises InvalidSignatureError when the key is off-curve or either
        # signature does not belong to it
        load_public_key(payload.public_key)
        verify_recoverable(sls.statement.signing_digest(), payload.v, payload.r, payload.s, payload.public_key)
        verify_signature(sls.statement.to_bytes(), payload.public_key, sls.signature)

        return ValidatedChallenge(
            kind=self.kind,
            challenge_id=derive_challenge_id(sls.log_id, self._id_body(payload)),
            payload=payload.to_bytes(),
            position=LogPosition(log_id=sls.log_id, index=sls.index),
            signer_key=payload.public_key,
        )

    def check_wrong_key(self, challenge: Challenge, proof: bytes) -> None:
        """Accept only if ``proof`` is the log's creation statement and its
        controlling key did not sign the challenged statement."""
        try:
            create = CreateLogStatement.from_bytes(proof)
        except WireFormatError as e:
            raise InvalidResponseError(f"Wrong-key proof is not a log creation statement: {e.message}") from e

        if create.log_id != challenge.log_id:
            raise InvalidResponseError("Wrong-key proof is for a different log")

        payload = self.decode(challenge.payload)
        sls = SignedLogStatement.from_bytes(payload.signed_statement)
        signer = recover_public_key(sls.statement.signing_digest(), payload.v, payload.r, payload.s)

        if compress_public_key(signer) == create.controlling_key:
            raise InvalidResponseError("Challenged statement was signed by the log's controlling key")


class LogPositionHandler(KindHandler):
    """Kinds that demand a proof about a log position under a commitment."""

    def __init__(self, kind: ChallengeKind, proof_type: ProofType, id_tag: bytes):
        self.kind = kind
        self.payload_type = LogPositionPayload
        self.proof_type = proof_type
        self._id_tag = id_tag

    def validate(self, payload: Payload | bytes) -> ValidatedChallenge:
        payload = self.decode(payload)
        if len(payload.log_id) != 32:
            raise InvalidPayloadError("log_id must be 32 bytes", field="log_id")
        if not 0 <= payload.index <= MAX_LOG_INDEX:
            raise InvalidPayloadError("index is out of range", field="index", value=payload.index)
        if not payload.commitment:
            raise InvalidPayloadError("commitment must not be empty", field="commitment")

        buf = io.BytesIO()
        buf.write(self._id_tag)
        write_varint(buf, payload.index)
        buf.write(payload.commitment)

        return ValidatedChallenge(
            kind=self.kind,
            challenge_id=derive_challenge_id(payload.log_id, buf.getvalue()),
            payload=payload.to_bytes(),
            position=LogPosition(log_id=payload.log_id, index=payload.index),
        )


KIND_HANDLERS: dict[ChallengeKind, KindHandler] = {
    ChallengeKind.LACK_OF_PROOF: SignedStatementHandler(ChallengeKind.LACK_OF_PROOF, LackOfProofPayload),
    ChallengeKind.APPEND_STATEMENT: SignedStatementHandler(
        ChallengeKind.APPEND_STATEMENT, AppendStatementPayload, id_tag=b"\x01"
    ),
    ChallengeKind.PROOF_OF_INCLUSION: LogPositionHandler(
        ChallengeKind.PROOF_OF_INCLUSION, ProofType.INCLUSION, id_tag=b"\x02"
    ),
    ChallengeKind.PROOF_OF_NON_INCLUSION: LogPositionHandler(
        ChallengeKind.PROOF_OF_NON_INCLUSION, ProofType.NON_INCLUSION, id_tag=b"\x03"
    ),
}


def get_handler(kind: ChallengeKind | str) -> KindHandler:
    try:
        return KIND_HANDLERS[ChallengeKind(kind)]
    except ValueError as e:
        raise InvalidPayloadError(f"Unknown challenge kind: {kind}", field="kind", value=kind) from e


# =============================================================================
# CHALLENGE RECORD
# =============================================================================


@dataclass(frozen=True)
class Challenge:
    """Stored challenge. Records are replaced, never edited in place, and
    never deleted."""

    id: str
    kind: ChallengeKind
    payload: bytes
    challenger: str
    log_id: bytes
    log_index: int
    created_at: datetime
    expires_at: datetime
    responded: bool = False
    resolved: bool = False
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution: Resolution | None = None
    payout: int | None = None
    round: int = 1

    @property
    def position(self) -> LogPosition:
        return LogPosition(log_id=self.log_id, index=self.log_index)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def resolve(
        self,
        *,
        at: datetime,
        by: str,
        resolution: Resolution,
        payout: int | None = None,
    ) -> Challenge:
        return replace(
            self,
            responded=resolution is not Resolution.SLASHED,
            resolved=True,
            resolved_at=at,
            resolved_by=by,
            resolution=resolution,
            payout=payout,
        )

    def public_view(self) -> dict[str, Any]:
        """The state any client can query."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "responded": self.responded,
            "resolved": self.resolved,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.public_view(),
            "payload": self.payload.hex(),
            "challenger": self.challenger,
            "log_id": self.log_id.hex(),
            "log_index": self.log_index,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "resolution": self.resolution.value if self.resolution else None,
            "payout": self.payout,
            "round": self.round,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Challenge:
        return cls(
            id=data["id"],
            kind=ChallengeKind(data["kind"]),
            payload=bytes.fromhex(data["payload"]),
            challenger=data["challenger"],
            log_id=bytes.fromhex(data["log_id"]),
            log_index=data["log_index"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            responded=data["responded"],
            resolved=data["resolved"],
            resolved_at=datetime.fromisoformat(data["resolved_at"]) if data.get("resolved_at") else None,
            resolved_by=data.get("resolved_by"),
            resolution=Resolution(data["resolution"]) if data.get("resolution") else None,
            payout=data.get("payout"),
            round=data.get("round", 1),
        )
