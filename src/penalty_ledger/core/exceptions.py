# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for the penalty ledger.

Every error a ledger operation can raise derives from PenaltyException.
A raised exception always means the ledger state was left untouched;
only a successful call result is authoritative.
"""

from __future__ import annotations

from typing import Any


class PenaltyException(Exception):  # noqa: N818
    """Base exception for all penalty ledger errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(PenaltyException):
    """Exception for validation errors.

    Raised when:
    - An argument is out of range (negative amounts, empty identities)
    - A challenge payload has the wrong shape for its kind
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidPayloadError(ValidationException):
    """A challenge payload could not be decoded or is mis-shaped for its kind."""


class WireFormatError(ValidationException):
    """Raised when bytes cannot be decoded into a wire structure."""


class ConfigException(PenaltyException):
    """Exception for configuration errors.

    Raised when:
    - A setting has an unsupported value
    - A proof verifier import path cannot be resolved
    """

    def __init__(self, message: str, setting: str | None = None):
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)
        self.setting = setting


class NotFoundError(PenaltyException):
    """Exception for unknown challenge ids and other missing resources."""

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(PenaltyException):
    """Exception for state conflicts.

    Raised when:
    - A challenge with the same id is already open
    - A mutation targets a challenge that already reached a terminal state
    - The stake pool is funded twice
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class DuplicateChallengeError(ConflictError):
    """An unresolved challenge with the same content-derived id exists."""


class AlreadyResolvedError(ConflictError):
    """The challenge is resolved; resolved challenges are immutable."""


class AlreadyFundedError(ConflictError):
    """The stake pool accepts exactly one deposit."""


class NotExpiredError(PenaltyException):
    """Withdrawal attempted before the challenge window closed."""

    def __init__(self, challenge_id: str, expires_at: str):
        super().__init__(
            f"Challenge {challenge_id} does not expire until {expires_at}",
            {"challenge_id": challenge_id, "expires_at": expires_at},
        )
        self.challenge_id = challenge_id
        self.expires_at = expires_at


class UnauthorizedError(PenaltyException):
    """The caller does not hold the role required for this operation."""

    def __init__(self, caller: str, required_role: str):
        super().__init__(
            f"Caller {caller} is not the {required_role}",
            {"caller": caller, "required_role": required_role},
        )
        self.caller = caller
        self.required_role = required_role


class RejectedEvidenceError(PenaltyException):
    """Base class for cryptographic or evidentiary rejection of a call."""


class InvalidSignatureError(RejectedEvidenceError):
    """A signature is malformed or does not recover to the expected key."""


class InvalidResponseError(RejectedEvidenceError):
    """A response does not demonstrate what it claims to."""


class InvalidProofError(RejectedEvidenceError):
    """The proof verifier rejected the supplied proof."""


class InsufficientFundsError(PenaltyException):
    """The pool cannot cover a payout.

    Unreachable while the pool invariants hold; its occurrence signals a
    protocol bug and must not be retried.
    """

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Payout of {requested} exceeds pool balance {available}",
            {"requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available
