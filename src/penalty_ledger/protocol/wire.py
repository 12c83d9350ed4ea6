"""Binary encodings of log statements.

Log statements are what a maintainer signs and what challengers quote
back at it. The layouts are:

    LogStatement             log_id (32) | varint index | varbytes statement
    SignedLogStatement       signature (64, r|s) | LogStatement
    CreateLogStatement       controlling key (33) | varbytes initial statement
    SignedCreateLogStatement signature (64) | CreateLogStatement

Integers use the Bitcoin CompactSize encoding. Decoders reject short
input, non-canonical varints, oversize byte strings and trailing data.
"""

from __future__ import annotations

import hashlib
import io
import struct
from dataclasses import dataclass

from ..core.exceptions import WireFormatError

LOG_ID_SIZE = 32
SIGNATURE_SIZE = 64
COMPRESSED_KEY_SIZE = 33
MAX_STATEMENT_SIZE = 256

_UINT64_MAX = 0xFFFFFFFFFFFFFFFF


def write_varint(buf: io.BytesIO, value: int) -> None:
    if value < 0 or value > _UINT64_MAX:
        raise WireFormatError("varint out of range", field="varint", value=value)
    if value < 0xFD:
        buf.write(bytes([value]))
    elif value <= 0xFFFF:
        buf.write(b"\xfd" + struct.pack("<H", value))
    elif value <= 0xFFFFFFFF:
        buf.write(b"\xfe" + struct.pack("<I", value))
    else:
        buf.write(b"\xff" + struct.pack("<Q", value))


def _read_exact(buf: io.BytesIO, size: int, what: str) -> bytes:
    data = buf.read(size)
    if len(data) != size:
        raise WireFormatError(f"Unexpected end of buffer reading {what}", field=what)
    return data


def read_varint(buf: io.BytesIO) -> int:
    prefix = _read_exact(buf, 1, "varint")[0]
    if prefix < 0xFD:
        return prefix
    if prefix == 0xFD:
        value, minimum = struct.unpack("<H", _read_exact(buf, 2, "varint"))[0], 0xFD
    elif prefix == 0xFE:
        value, minimum = struct.unpack("<I", _read_exact(buf, 4, "varint"))[0], 0x10000
    else:
        value, minimum = struct.unpack("<Q", _read_exact(buf, 8, "varint"))[0], 0x100000000
    if value < minimum:
        raise WireFormatError("Non-canonical varint encoding", field="varint", value=value)
    return value


def write_varbytes(buf: io.BytesIO, data: bytes) -> None:
    write_varint(buf, len(data))
    buf.write(data)


def read_varbytes(buf: io.BytesIO, max_size: int, field: str) -> bytes:
    size = read_varint(buf)
    if size > max_size:
        raise WireFormatError(f"{field} is larger than the maximum of {max_size} bytes", field=field, value=size)
    return _read_exact(buf, size, field)


def _ensure_consumed(buf: io.BytesIO, what: str) -> None:
    if buf.read(1):
        raise WireFormatError(f"Trailing data after {what}", field=what)


@dataclass(frozen=True)
class LogStatement:
    """An unsigned append to a log."""

    log_id: bytes
    index: int
    statement: bytes

    def __post_init__(self) -> None:
        if len(self.log_id) != LOG_ID_SIZE:
            raise WireFormatError("log_id must be 32 bytes", field="log_id", value=len(self.log_id))
        if len(self.statement) > MAX_STATEMENT_SIZE:
            raise WireFormatError("statement too long", field="statement", value=len(self.statement))

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        buf.write(self.log_id)
        write_varint(buf, self.index)
        write_varbytes(buf, self.statement)
        return buf.getvalue()

    @classmethod
    def read(cls, buf: io.BytesIO) -> LogStatement:
        log_id = _read_exact(buf, LOG_ID_SIZE, "log_id")
        index = read_varint(buf)
        statement = read_varbytes(buf, MAX_STATEMENT_SIZE, "statement")
        return cls(log_id=log_id, index=index, statement=statement)

    @classmethod
    def from_bytes(cls, data: bytes) -> LogStatement:
        buf = io.BytesIO(data)
        ls = cls.read(buf)
        _ensure_consumed(buf, "log statement")
        return ls

    def signing_digest(self) -> bytes:
        """SHA-256 of the unsigned bytes; the message every signature covers."""
        return hashlib.sha256(self.to_bytes()).digest()


@dataclass(frozen=True)
class SignedLogStatement:
    """A log append together with the controlling key's signature."""

    signature: bytes
    statement: LogStatement

    def __post_init__(self) -> None:
        if len(self.signature) != SIGNATURE_SIZE:
            raise WireFormatError("signature must be 64 bytes", field="signature", value=len(self.signature))

    @property
    def log_id(self) -> bytes:
        return self.statement.log_id

    @property
    def index(self) -> int:
        return self.statement.index

    def to_bytes(self) -> bytes:
        return self.signature + self.statement.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> SignedLogStatement:
        buf = io.BytesIO(data)
        signature = _read_exact(buf, SIGNATURE_SIZE, "signature")
        statement = LogStatement.read(buf)
        _ensure_consumed(buf, "signed log statement")
        return cls(signature=signature, statement=statement)


@dataclass(frozen=True)
class CreateLogStatement:
    """An unsigned log creation; its hash is the log id."""

    controlling_key: bytes
    initial_statement: bytes

    def __post_init__(self) -> None:
        if len(self.controlling_key) != COMPRESSED_KEY_SIZE:
            raise WireFormatError(
                "controlling_key must be a 33 byte compressed key",
                field="controlling_key",
                value=len(self.controlling_key),
            )
        if len(self.initial_statement) > MAX_STATEMENT_SIZE:
            raise WireFormatError("initial statement too long", field="initial_statement")

    def to_bytes(self) -> bytes:
        buf = io.BytesIO()
        buf.write(self.controlling_key)
        write_varbytes(buf, self.initial_statement)
        return buf.getvalue()

    @classmethod
    def read(cls, buf: io.BytesIO) -> CreateLogStatement:
        key = _read_exact(buf, COMPRESSED_KEY_SIZE, "controlling_key")
        initial = read_varbytes(buf, MAX_STATEMENT_SIZE, "initial_statement")
        return cls(controlling_key=key, initial_statement=initial)

    @classmethod
    def from_bytes(cls, data: bytes) -> CreateLogStatement:
        buf = io.BytesIO(data)
        cls_ = cls.read(buf)
        _ensure_consumed(buf, "create log statement")
        return cls_

    @property
    def log_id(self) -> bytes:
        return log_id_for(self.to_bytes())

    def signing_digest(self) -> bytes:
        return hashlib.sha256(self.to_bytes()).digest()


@dataclass(frozen=True)
class SignedCreateLogStatement:
    signature: bytes
    create_statement: CreateLogStatement

    def __post_init__(self) -> None:
        if len(self.signature) != SIGNATURE_SIZE:
            raise WireFormatError("signature must be 64 bytes", field="signature", value=len(self.signature))

    def to_bytes(self) -> bytes:
        return self.signature + self.create_statement.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> SignedCreateLogStatement:
        buf = io.BytesIO(data)
        signature = _read_exact(buf, SIGNATURE_SIZE, "signature")
        create_statement = CreateLogStatement.read(buf)
        _ensure_consumed(buf, "signed create log statement")
        return cls(signature=signature, create_statement=create_statement)


def log_id_for(create_statement_bytes: bytes) -> bytes:
    """A log is identified by the SHA-256 of its creation statement."""
    return hashlib.sha256(create_statement_bytes).digest()
