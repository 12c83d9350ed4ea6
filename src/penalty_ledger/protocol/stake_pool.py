"""Stake pool holding the maintainer's collateral.

The pool is funded exactly once. After that its balance only goes down,
and only through a payout made while withdrawing an expired, unanswered
challenge. Pools are immutable values: ``fund`` and ``pay_out`` return
a new pool so the registry can stage changes and commit them atomically.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..core.exceptions import AlreadyFundedError, InsufficientFundsError, ValidationException


@dataclass(frozen=True)
class Payout:
    """A single transfer out of the pool."""

    amount: int
    recipient: str
    challenge_id: str
    paid_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "recipient": self.recipient,
            "challenge_id": self.challenge_id,
            "paid_at": self.paid_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Payout:
        return cls(
            amount=data["amount"],
            recipient=data["recipient"],
            challenge_id=data["challenge_id"],
            paid_at=datetime.fromisoformat(data["paid_at"]),
        )


@dataclass(frozen=True)
class StakePool:
    """Collateral balance plus its audit trail."""

    balance: int = 0
    depositor: str | None = None
    funded_amount: int = 0
    funded_at: datetime | None = None
    payouts: tuple[Payout, ...] = ()

    @property
    def is_funded(self) -> bool:
        return self.depositor is not None

    @property
    def total_paid_out(self) -> int:
        return sum(p.amount for p in self.payouts)

    def fund(self, amount: int, depositor: str, at: datetime) -> StakePool:
        """Accept the single inbound deposit.

        Raises:
            AlreadyFundedError: If the pool has already been funded.
            ValidationException: If amount is not a positive integer or the
                depositor is empty.
        """
        if self.is_funded:
            raise AlreadyFundedError(f"Stake pool already funded by {self.depositor}")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationException("Deposit must be a positive integer amount", field="amount", value=amount)
        if not depositor:
            raise ValidationException("Depositor identity is required", field="depositor")
        return replace(self, balance=amount, depositor=depositor, funded_amount=amount, funded_at=at)

    def pay_out(self, amount: int, recipient: str, challenge_id: str, at: datetime) -> tuple[StakePool, Payout]:
        """Debit ``amount`` for ``recipient``.

        Only the registry's withdrawal path calls this.

        Raises:
            InsufficientFundsError: If amount exceeds the balance, or the
                payout would break conservation. Both indicate a protocol bug.
        """
        if amount < 0:
            raise ValidationException("Payout amount cannot be negative", field="amount", value=amount)
        if amount > self.balance:
            raise InsufficientFundsError(amount, self.balance)
        if self.total_paid_out + amount > self.funded_amount:
            raise InsufficientFundsError(amount, self.funded_amount - self.total_paid_out)

        payout = Payout(amount=amount, recipient=recipient, challenge_id=challenge_id, paid_at=at)
        pool = replace(self, balance=self.balance - amount, payouts=self.payouts + (payout,))
        return pool, payout

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.balance,
            "depositor": self.depositor,
            "funded_amount": self.funded_amount,
            "funded_at": self.funded_at.isoformat() if self.funded_at else None,
            "total_paid_out": self.total_paid_out,
            "payouts": [p.to_dict() for p in self.payouts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StakePool:
        return cls(
            balance=data["balance"],
            depositor=data.get("depositor"),
            funded_amount=data.get("funded_amount", 0),
            funded_at=datetime.fromisoformat(data["funded_at"]) if data.get("funded_at") else None,
            payouts=tuple(Payout.from_dict(p) for p in data.get("payouts", [])),
        )
