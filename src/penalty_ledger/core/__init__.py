"""Penalty ledger core - configuration, errors and logging shared by all layers."""

from .config import LedgerSettings, clear_config_cache, get_config, load_settings
from .exceptions import (
    AlreadyFundedError,
    AlreadyResolvedError,
    ConfigException,
    ConflictError,
    DuplicateChallengeError,
    InsufficientFundsError,
    InvalidPayloadError,
    InvalidProofError,
    InvalidResponseError,
    InvalidSignatureError,
    NotExpiredError,
    NotFoundError,
    PenaltyException,
    RejectedEvidenceError,
    UnauthorizedError,
    ValidationException,
    WireFormatError,
)
from .logging import configure_logging, correlation_context

__all__ = [
    "LedgerSettings",
    "clear_config_cache",
    "get_config",
    "load_settings",
    "AlreadyFundedError",
    "AlreadyResolvedError",
    "ConfigException",
    "ConflictError",
    "DuplicateChallengeError",
    "InsufficientFundsError",
    "InvalidPayloadError",
    "InvalidProofError",
    "InvalidResponseError",
    "InvalidSignatureError",
    "NotExpiredError",
    "NotFoundError",
    "PenaltyException",
    "RejectedEvidenceError",
    "UnauthorizedError",
    "ValidationException",
    "WireFormatError",
    "configure_logging",
    "correlation_context",
]
