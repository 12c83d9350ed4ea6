"""Signature Validator for secp256k1 statements.

Two signature shapes appear in the protocol:

- 64-byte compact ECDSA signatures (r | s) embedded in log statements,
  verified against a known key with ``verify_signature``.
- Recoverable signatures (v, r, s) attached to challenges, from which
  the signer's public key is recovered with ``recover_public_key``.

Everything here is a pure function of its inputs. Recovery is
deterministic, which challenge-id derivation and wrong-key dismissal
both depend on.

Key parsing and ECDSA verification use ``cryptography``; public-key
recovery, which ``cryptography`` does not expose, uses ``coincurve``.
"""

from __future__ import annotations

from dataclasses import dataclass

from coincurve import PrivateKey, PublicKey
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from ..core.exceptions import InvalidSignatureError

# Order of the secp256k1 group
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

SCALAR_SIZE = 32
DIGEST_SIZE = 32
UNCOMPRESSED_KEY_SIZE = 65
COMPRESSED_KEY_SIZE = 33

# Ethereum-style recovery ids are offset by 27
RECOVERY_ID_OFFSET = 27


def normalize_recovery_id(v: int) -> int:
    """Map v (27/28, or the raw 0/1) to a recovery id in {0, 1}."""
    if v in (RECOVERY_ID_OFFSET, RECOVERY_ID_OFFSET + 1):
        return v - RECOVERY_ID_OFFSET
    if v in (0, 1):
        return v
    raise InvalidSignatureError(f"Invalid recovery id: {v}", {"v": v})


def _check_scalar(value: bytes, name: str) -> int:
    if len(value) != SCALAR_SIZE:
        raise InvalidSignatureError(f"{name} must be {SCALAR_SIZE} bytes", {name: len(value)})
    number = int.from_bytes(value, "big")
    if not 0 < number < SECP256K1_ORDER:
        raise InvalidSignatureError(f"{name} is out of range for secp256k1", {name: value.hex()})
    return number


def recover_public_key(digest: bytes, v: int, r: bytes, s: bytes) -> bytes:
    """Recover the uncompressed public key that signed ``digest``.

    Args:
        digest: 32-byte message digest that was signed.
        v: Recovery id (27/28 or 0/1).
        r: 32-byte big-endian r scalar.
        s: 32-byte big-endian s scalar.

    Returns:
        The 65-byte uncompressed public key.

    Raises:
        InvalidSignatureError: On out-of-range scalars, a bad recovery id,
            or a signature that does not recover to a curve point.
    """
    if len(digest) != DIGEST_SIZE:
        raise InvalidSignatureError("Message digest must be 32 bytes", {"digest_size": len(digest)})
    recovery_id = normalize_recovery_id(v)
    _check_scalar(r, "r")
    _check_scalar(s, "s")

    try:
        recovered = PublicKey.from_signature_and_message(
            r + s + bytes([recovery_id]),
            digest,
            hasher=None,
        )
    except ValueError as e:
        raise InvalidSignatureError(f"Public key recovery failed: {e}") from e
    return recovered.format(compressed=False)


def load_public_key(data: bytes) -> ec.EllipticCurvePublicKey:
    """Parse a compressed or uncompressed secp256k1 public key."""
    if len(data) not in (COMPRESSED_KEY_SIZE, UNCOMPRESSED_KEY_SIZE):
        raise InvalidSignatureError("Public key must be 33 or 65 bytes", {"size": len(data)})
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), data)
    except ValueError as e:
        raise InvalidSignatureError("Public key is not a point on secp256k1") from e


def compress_public_key(data: bytes) -> bytes:
    key = load_public_key(data)
    return key.public_bytes(serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint)


def same_public_key(a: bytes, b: bytes) -> bool:
    """Compare two keys regardless of their encoding."""
    return compress_public_key(a) == compress_public_key(b)


def verify_signature(message: bytes, public_key: bytes, signature: bytes) -> None:
    """Verify a 64-byte compact signature over SHA-256(message).

    Raises:
        InvalidSignatureError: If the signature does not verify.
    """
    if len(signature) != 2 * SCALAR_SIZE:
        raise InvalidSignatureError("Compact signature must be 64 bytes", {"size": len(signature)})
    key = load_public_key(public_key)
    r = int.from_bytes(signature[:SCALAR_SIZE], "big")
    s = int.from_bytes(signature[SCALAR_SIZE:], "big")
    try:
        key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature as e:
        raise InvalidSignatureError("Signature verification failed") from e


def verify_recoverable(digest: bytes, v: int, r: bytes, s: bytes, expected_public_key: bytes) -> bytes:
    """Recover the signer of ``digest`` and require it to be ``expected_public_key``.

    Returns:
        The recovered uncompressed key.
    """
    recovered = recover_public_key(digest, v, r, s)
    if not same_public_key(recovered, expected_public_key):
        raise InvalidSignatureError(
            "Signature was not produced by the claimed key",
            {"recovered": recovered.hex(), "expected": expected_public_key.hex()},
        )
    return recovered


@dataclass(frozen=True)
class RecoverableSignature:
    v: int
    r: bytes
    s: bytes


class SigningKey:
    """A secp256k1 private key for producing statements and challenges.

    Used by the CLI to prepare challenges and by tests to build fixtures;
    the ledger itself only ever verifies.
    """

    def __init__(self, secret: bytes | None = None):
        try:
            self._key = PrivateKey(secret)
        except ValueError as e:
            raise InvalidSignatureError(f"Invalid private key: {e}") from e

    @classmethod
    def generate(cls) -> SigningKey:
        return cls()

    @classmethod
    def from_hex(cls, secret_hex: str) -> SigningKey:
        try:
            secret = bytes.fromhex(secret_hex)
        except ValueError as e:
            raise InvalidSignatureError("Private key must be hex encoded") from e
        if len(secret) != SCALAR_SIZE:
            raise InvalidSignatureError("Private key must be 32 bytes")
        return cls(secret)

    @property
    def secret(self) -> bytes:
        return self._key.secret

    @property
    def public_key(self) -> bytes:
        """Uncompressed (65-byte) public key."""
        return self._key.public_key.format(compressed=False)

    @property
    def compressed_public_key(self) -> bytes:
        return self._key.public_key.format(compressed=True)

    def sign(self, message: bytes) -> bytes:
        """Compact (r | s) ECDSA signature over SHA-256(message)."""
        private = ec.derive_private_key(int.from_bytes(self.secret, "big"), ec.SECP256K1())
        der = private.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(SCALAR_SIZE, "big") + s.to_bytes(SCALAR_SIZE, "big")

    def sign_recoverable(self, digest: bytes) -> RecoverableSignature:
        """Recoverable signature over a 32-byte digest, with v offset by 27."""
        raw = self._key.sign_recoverable(digest, hasher=None)
        return RecoverableSignature(
            v=raw[64] + RECOVERY_ID_OFFSET,
            r=raw[:SCALAR_SIZE],
            s=raw[SCALAR_SIZE : 2 * SCALAR_SIZE],
        )
