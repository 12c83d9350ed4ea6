"""Tests for penalty_ledger.protocol.signatures."""

from __future__ import annotations

import hashlib

import pytest

from penalty_ledger.core.exceptions import InvalidSignatureError
from penalty_ledger.protocol.signatures import (
    SECP256K1_ORDER,
    SigningKey,
    compress_public_key,
    load_public_key,
    normalize_recovery_id,
    recover_public_key,
    same_public_key,
    verify_recoverable,
    verify_signature,
)

DIGEST = hashlib.sha256(b"log statement").digest()


class TestRecoveryId:
    @pytest.mark.parametrize("v,expected", [(27, 0), (28, 1), (0, 0), (1, 1)])
    def test_accepted_forms(self, v, expected):
        assert normalize_recovery_id(v) == expected

    @pytest.mark.parametrize("v", [2, 26, 29, 35])
    def test_rejected(self, v):
        with pytest.raises(InvalidSignatureError):
            normalize_recovery_id(v)


class TestRecoverPublicKey:
    def test_recovers_signer(self, maintainer_key):
        sig = maintainer_key.sign_recoverable(DIGEST)
        assert sig.v in (27, 28)
        assert recover_public_key(DIGEST, sig.v, sig.r, sig.s) == maintainer_key.public_key

    def test_raw_recovery_id_equivalent(self, maintainer_key):
        sig = maintainer_key.sign_recoverable(DIGEST)
        assert recover_public_key(DIGEST, sig.v - 27, sig.r, sig.s) == maintainer_key.public_key

    def test_deterministic(self, maintainer_key):
        sig = maintainer_key.sign_recoverable(DIGEST)
        assert recover_public_key(DIGEST, sig.v, sig.r, sig.s) == recover_public_key(DIGEST, sig.v, sig.r, sig.s)

    def test_other_digest_recovers_other_key(self, maintainer_key):
        sig = maintainer_key.sign_recoverable(DIGEST)
        other = hashlib.sha256(b"something else").digest()
        try:
            recovered = recover_public_key(other, sig.v, sig.r, sig.s)
        except InvalidSignatureError:
            return
        assert recovered != maintainer_key.public_key

    @pytest.mark.parametrize("r", [b"\x00" * 32, SECP256K1_ORDER.to_bytes(32, "big"), b"\x01" * 31])
    def test_bad_r_rejected(self, maintainer_key, r):
        sig = maintainer_key.sign_recoverable(DIGEST)
        with pytest.raises(InvalidSignatureError):
            recover_public_key(DIGEST, sig.v, r, sig.s)

    def test_bad_digest_size(self, maintainer_key):
        sig = maintainer_key.sign_recoverable(DIGEST)
        with pytest.raises(InvalidSignatureError):
            recover_public_key(DIGEST[:31], sig.v, sig.r, sig.s)


class TestVerifyRecoverable:
    def test_matching_key(self, maintainer_key):
        sig = maintainer_key.sign_recoverable(DIGEST)
        recovered = verify_recoverable(DIGEST, sig.v, sig.r, sig.s, maintainer_key.compressed_public_key)
        assert recovered == maintainer_key.public_key

    def test_wrong_key(self, maintainer_key, attacker_key):
        sig = attacker_key.sign_recoverable(DIGEST)
        with pytest.raises(InvalidSignatureError, match="not produced by the claimed key"):
            verify_recoverable(DIGEST, sig.v, sig.r, sig.s, maintainer_key.public_key)


class TestVerifySignature:
    def test_valid(self, maintainer_key):
        verify_signature(b"message", maintainer_key.public_key, maintainer_key.sign(b"message"))

    def test_tampered_message(self, maintainer_key):
        with pytest.raises(InvalidSignatureError):
            verify_signature(b"messagE", maintainer_key.public_key, maintainer_key.sign(b"message"))

    def test_other_key(self, maintainer_key, attacker_key):
        with pytest.raises(InvalidSignatureError):
            verify_signature(b"message", attacker_key.public_key, maintainer_key.sign(b"message"))

    def test_wrong_length(self, maintainer_key):
        with pytest.raises(InvalidSignatureError):
            verify_signature(b"message", maintainer_key.public_key, b"\x01" * 63)


class TestKeys:
    def test_compress(self, maintainer_key):
        assert compress_public_key(maintainer_key.public_key) == maintainer_key.compressed_public_key

    def test_same_public_key_across_encodings(self, maintainer_key, attacker_key):
        assert same_public_key(maintainer_key.public_key, maintainer_key.compressed_public_key)
        assert not same_public_key(maintainer_key.public_key, attacker_key.public_key)

    def test_off_curve_point(self):
        with pytest.raises(InvalidSignatureError):
            load_public_key(b"\x04" + b"\x01" * 64)

    def test_wrong_size(self):
        with pytest.raises(InvalidSignatureError):
            load_public_key(b"\x02" * 20)


class TestSigningKey:
    def test_from_hex(self, maintainer_key):
        key = SigningKey.from_hex("11" * 32)
        assert key.public_key == maintainer_key.public_key

    @pytest.mark.parametrize("secret", ["zz" * 32, "11" * 31, "00" * 32])
    def test_invalid_secret(self, secret):
        with pytest.raises(InvalidSignatureError):
            SigningKey.from_hex(secret)

    def test_generate_unique(self):
        assert SigningKey.generate().secret != SigningKey.generate().secret

    def test_key_shapes(self, maintainer_key):
        assert len(maintainer_key.public_key) == 65
        assert maintainer_key.public_key[0] == 0x04
        assert len(maintainer_key.compressed_public_key) == 33
