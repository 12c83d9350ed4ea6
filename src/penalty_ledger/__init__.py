# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Penalty ledger - collateral-backed challenges against a log maintainer.

A maintainer stakes a deposit. Anyone may raise a time-boxed challenge
claiming the maintainer failed to prove a statement is (or is not) in its
append-only log. The maintainer answers with a proof, or shows the
challenge was signed by the wrong key; an unanswered challenge lets the
stake be withdrawn as a penalty once its window closes.

  Challenge (content-addressed, one per statement)
    -> Response (wrong-key dismissal or verified proof)
    -> Withdrawal (only after expiry, only if unanswered)

CLI entry point: ``penalty-ledger``
"""

__version__ = "0.1.0"

from .core.config import LedgerSettings, get_config
from .core.exceptions import PenaltyException
from .protocol.challenges import ChallengeKind
from .protocol.ledger import open_ledger
from .protocol.registry import ChallengeRegistry

__all__ = [
    "__version__",
    "ChallengeKind",
    "ChallengeRegistry",
    "LedgerSettings",
    "PenaltyException",
    "get_config",
    "open_ledger",
]
