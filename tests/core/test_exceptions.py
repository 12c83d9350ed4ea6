"""Tests for penalty_ledger.core.exceptions module."""

from __future__ import annotations

import pytest

from penalty_ledger.core.exceptions import (
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

# ============================================================================
# PenaltyException Tests
# ============================================================================


class TestPenaltyException:
    """Tests for base PenaltyException."""

    def test_create_with_message(self):
        exc = PenaltyException("Something went wrong")
        assert str(exc) == "Something went wrong"
        assert exc.message == "Something went wrong"
        assert exc.details == {}

    def test_to_dict(self):
        """to_dict should serialize correctly."""
        exc = PenaltyException("Test error", details={"info": "extra"})
        assert exc.to_dict() == {
            "error": "PenaltyException",
            "message": "Test error",
            "details": {"info": "extra"},
        }

    def test_to_dict_class_name(self):
        """to_dict should use actual class name."""
        exc = InvalidProofError("rejected")
        assert exc.to_dict()["error"] == "InvalidProofError"

    def test_can_be_raised_and_caught(self):
        with pytest.raises(PenaltyException) as exc_info:
            raise PenaltyException("Test raise")
        assert exc_info.value.message == "Test raise"


# ============================================================================
# Validation / config
# ============================================================================


class TestValidationException:
    def test_field_and_value_in_details(self):
        exc = ValidationException("bad amount", field="amount", value=-1)
        assert exc.field == "amount"
        assert exc.value == -1
        assert exc.details == {"field": "amount", "value": "-1"}

    def test_no_field(self):
        exc = ValidationException("bad")
        assert exc.details == {}

    def test_payload_and_wire_errors_are_validation_errors(self):
        assert issubclass(InvalidPayloadError, ValidationException)
        assert issubclass(WireFormatError, ValidationException)


class TestConfigException:
    def test_setting_in_details(self):
        exc = ConfigException("bad verifier", setting="proof_verifier")
        assert exc.setting == "proof_verifier"
        assert exc.details == {"setting": "proof_verifier"}


# ============================================================================
# Ledger errors
# ============================================================================


class TestNotFoundError:
    def test_message_and_details(self):
        exc = NotFoundError("Challenge", "abc123")
        assert exc.message == "Challenge not found: abc123"
        assert exc.details == {"resource_type": "Challenge", "resource_id": "abc123"}


class TestConflictErrors:
    @pytest.mark.parametrize("cls", [DuplicateChallengeError, AlreadyResolvedError, AlreadyFundedError])
    def test_subclasses(self, cls):
        exc = cls("conflict", existing_id="abc")
        assert isinstance(exc, ConflictError)
        assert exc.details == {"existing_id": "abc"}

    def test_existing_id_optional(self):
        assert AlreadyFundedError("funded").details == {}


class TestNotExpiredError:
    def test_details(self):
        exc = NotExpiredError("abc", "2026-01-01T00:01:00+00:00")
        assert "abc" in exc.message
        assert exc.expires_at == "2026-01-01T00:01:00+00:00"
        assert exc.details["challenge_id"] == "abc"


class TestUnauthorizedError:
    def test_details(self):
        exc = UnauthorizedError("mallory", "maintainer")
        assert exc.message == "Caller mallory is not the maintainer"
        assert exc.to_dict()["details"] == {"caller": "mallory", "required_role": "maintainer"}


class TestRejectedEvidence:
    @pytest.mark.parametrize("cls", [InvalidSignatureError, InvalidResponseError, InvalidProofError])
    def test_subclasses(self, cls):
        assert issubclass(cls, RejectedEvidenceError)
        assert issubclass(cls, PenaltyException)


class TestInsufficientFundsError:
    def test_details(self):
        exc = InsufficientFundsError(11, 10)
        assert exc.requested == 11
        assert exc.available == 10
        assert exc.message == "Payout of 11 exceeds pool balance 10"
