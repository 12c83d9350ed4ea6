# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any

from ..core.exceptions import PenaltyException


def output_result(data: dict[str, Any] | list[Any]) -> None:
    """Pretty-print a command result as JSON on stdout."""
    print(json.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)


def output_exception(exc: PenaltyException) -> None:
    """Print a ledger error with its class name so scripts can branch on it."""
    output_error(f"{exc.__class__.__name__}: {exc.message}")
