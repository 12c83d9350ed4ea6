"""Core configuration - centralized config for the penalty_ledger package.

All environment-based configuration should flow through this module.

Usage:
    from penalty_ledger.core.config import get_config
    config = get_config()

    period = config.challenge_period_seconds
    log_level = config.log_level
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigException

DEFAULT_STATE_PATH = Path.home() / ".penalty-ledger" / "state.json"


class LedgerSettings(BaseSettings):
    """Configuration settings for the penalty ledger.

    Settings can be configured via environment variables with the
    PENALTY_ prefix, or passed by field name for programmatic use.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # PROTOCOL SETTINGS
    # ==========================================================================

    challenge_period_seconds: int = Field(
        default=3600,
        gt=0,
        description="Length of the window a maintainer has to answer a challenge",
        validation_alias="PENALTY_CHALLENGE_PERIOD_SECONDS",
    )
    allow_resubmission: bool = Field(
        default=False,
        description="Allow a resolved challenge id to be raised again with a fresh window",
        validation_alias="PENALTY_ALLOW_RESUBMISSION",
    )
    payout_recipient: Literal["caller", "challenger"] = Field(
        default="caller",
        description="Who receives the stake when an expired challenge is withdrawn",
        validation_alias="PENALTY_PAYOUT_RECIPIENT",
    )
    restrict_responders: bool = Field(
        default=False,
        description="Only the depositor (maintainer) may respond to challenges",
        validation_alias="PENALTY_RESTRICT_RESPONDERS",
    )
    proof_verifier: str = Field(
        default="reject",
        description="'reject' or a 'module:attribute' path to a proof verifier",
        validation_alias="PENALTY_PROOF_VERIFIER",
    )

    # ==========================================================================
    # STORAGE SETTINGS
    # ==========================================================================

    store_backend: Literal["memory", "file"] = Field(
        default="memory",
        description="Ledger state backend: 'memory' or 'file'",
        validation_alias="PENALTY_STORE",
    )
    state_path: Path = Field(
        default=DEFAULT_STATE_PATH,
        description="JSON state file used by the file backend",
        validation_alias="PENALTY_STATE_PATH",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="PENALTY_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="PENALTY_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="PENALTY_LOG_FILE",
    )


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: LedgerSettings | None = None


def load_settings(**overrides) -> LedgerSettings:
    """Build settings from the environment plus explicit overrides.

    Raises:
        ConfigException: If any setting fails validation.
    """
    try:
        return LedgerSettings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        setting = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ConfigException(f"Invalid configuration: {first.get('msg', e)}", setting=setting) from e


def get_config() -> LedgerSettings:
    """Get the global configuration instance.

    Returns:
        The singleton LedgerSettings instance.
    """
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
