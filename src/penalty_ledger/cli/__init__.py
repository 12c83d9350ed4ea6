"""Command-line interface for the penalty ledger."""

from .main import app, main

__all__ = ["app", "main"]
