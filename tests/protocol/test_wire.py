"""Tests for penalty_ledger.protocol.wire - varints, var-bytes and log statements."""

from __future__ import annotations

import hashlib
import io

import pytest

from penalty_ledger.core.exceptions import WireFormatError
from penalty_ledger.protocol.wire import (
    MAX_STATEMENT_SIZE,
    CreateLogStatement,
    LogStatement,
    SignedCreateLogStatement,
    SignedLogStatement,
    log_id_for,
    read_varbytes,
    read_varint,
    write_varbytes,
    write_varint,
)

LOG_ID = bytes(range(32))


def _varint(value: int) -> bytes:
    buf = io.BytesIO()
    write_varint(buf, value)
    return buf.getvalue()


# ============================================================================
# Varint
# ============================================================================


class TestVarint:
    @pytest.mark.parametrize(
        "value,encoded",
        [
            (0, b"\x00"),
            (0xFC, b"\xfc"),
            (0xFD, b"\xfd\xfd\x00"),
            (0xFFFF, b"\xfd\xff\xff"),
            (0x10000, b"\xfe\x00\x00\x01\x00"),
            (0x100000000, b"\xff\x00\x00\x00\x00\x01\x00\x00\x00"),
        ],
    )
    def test_compact_size_encoding(self, value, encoded):
        assert _varint(value) == encoded
        assert read_varint(io.BytesIO(encoded)) == value

    def test_negative_rejected(self):
        with pytest.raises(WireFormatError):
            _varint(-1)

    def test_too_large_rejected(self):
        with pytest.raises(WireFormatError):
            _varint(1 << 64)

    @pytest.mark.parametrize("encoded", [b"\xfd\x05\x00", b"\xfe\xff\x00\x00\x00", b"\xff\x01\x00\x00\x00\x00\x00\x00\x00"])
    def test_non_canonical_rejected(self, encoded):
        with pytest.raises(WireFormatError, match="Non-canonical"):
            read_varint(io.BytesIO(encoded))

    @pytest.mark.parametrize("encoded", [b"", b"\xfd\x00", b"\xfe\x00\x00"])
    def test_truncated(self, encoded):
        with pytest.raises(WireFormatError):
            read_varint(io.BytesIO(encoded))


class TestVarbytes:
    def test_length_prefixed(self):
        buf = io.BytesIO()
        write_varbytes(buf, b"abc")
        assert buf.getvalue() == b"\x03abc"

    def test_max_size_enforced(self):
        with pytest.raises(WireFormatError) as exc_info:
            read_varbytes(io.BytesIO(b"\x05hello"), 4, "statement")
        assert exc_info.value.field == "statement"

    def test_truncated_body(self):
        with pytest.raises(WireFormatError):
            read_varbytes(io.BytesIO(b"\x05hel"), 10, "statement")


# ============================================================================
# Log statements
# ============================================================================


class TestLogStatement:
    def test_layout(self):
        ls = LogStatement(log_id=LOG_ID, index=7, statement=b"hi")
        assert ls.to_bytes() == LOG_ID + b"\x07" + b"\x02hi"

    def test_signing_digest(self):
        ls = LogStatement(log_id=LOG_ID, index=7, statement=b"hi")
        assert ls.signing_digest() == hashlib.sha256(ls.to_bytes()).digest()

    def test_from_bytes(self):
        ls = LogStatement.from_bytes(LOG_ID + b"\xfd\x00\x01" + b"\x01x")
        assert ls.index == 256
        assert ls.statement == b"x"

    def test_trailing_data_rejected(self):
        data = LogStatement(log_id=LOG_ID, index=1, statement=b"x").to_bytes()
        with pytest.raises(WireFormatError, match="Trailing"):
            LogStatement.from_bytes(data + b"\x00")

    def test_bad_log_id(self):
        with pytest.raises(WireFormatError):
            LogStatement(log_id=b"\x00" * 31, index=0, statement=b"")

    def test_statement_size_limit(self):
        LogStatement(log_id=LOG_ID, index=0, statement=b"x" * MAX_STATEMENT_SIZE)
        with pytest.raises(WireFormatError):
            LogStatement(log_id=LOG_ID, index=0, statement=b"x" * (MAX_STATEMENT_SIZE + 1))


class TestSignedLogStatement:
    def test_signature_prefix(self):
        ls = LogStatement(log_id=LOG_ID, index=2, statement=b"abc")
        sls = SignedLogStatement(signature=b"\x01" * 64, statement=ls)

        data = sls.to_bytes()
        assert data[:64] == b"\x01" * 64
        assert data[64:] == ls.to_bytes()

        parsed = SignedLogStatement.from_bytes(data)
        assert parsed == sls
        assert parsed.log_id == LOG_ID
        assert parsed.index == 2

    def test_short_signature_rejected(self):
        with pytest.raises(WireFormatError):
            SignedLogStatement.from_bytes(b"\x01" * 40)


class TestCreateLogStatement:
    def test_log_id_is_hash_of_bytes(self, maintainer_key):
        create = CreateLogStatement(controlling_key=maintainer_key.compressed_public_key, initial_statement=b"g")
        data = create.to_bytes()
        assert data == maintainer_key.compressed_public_key + b"\x01g"
        assert create.log_id == hashlib.sha256(data).digest() == log_id_for(data)

    def test_requires_compressed_key(self, maintainer_key):
        with pytest.raises(WireFormatError):
            CreateLogStatement(controlling_key=maintainer_key.public_key, initial_statement=b"")

    def test_signed_create_statement(self, maintainer_key, create_log):
        signed = SignedCreateLogStatement(signature=b"\x02" * 64, create_statement=create_log)
        parsed = SignedCreateLogStatement.from_bytes(signed.to_bytes())
        assert parsed.create_statement.log_id == create_log.log_id
