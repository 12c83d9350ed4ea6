"""Proof Verifier boundary.

Checking inclusion and non-inclusion proofs against the anchor chain is
done outside this package. The ledger only needs a yes/no answer for a
given challenge kind, log position and proof bytes; anything a verifier
raises is treated as a rejection.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..core.exceptions import ConfigException

if TYPE_CHECKING:
    from .challenges import ChallengeKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogPosition:
    """A statement slot: which log, and which index within it."""

    log_id: bytes
    index: int

    def to_dict(self) -> dict:
        return {"log_id": self.log_id.hex(), "index": self.index}


@runtime_checkable
class ProofVerifier(Protocol):
    """Pure, deterministic verification of anchor-chain proofs."""

    def verify(self, kind: ChallengeKind, position: LogPosition, *proofs: bytes) -> bool: ...


class RejectingProofVerifier:
    """Rejects every proof. The safe default when no verifier is configured."""

    def verify(self, kind: ChallengeKind, position: LogPosition, *proofs: bytes) -> bool:
        logger.debug("No proof verifier configured; rejecting %s proof for %s", kind, position.log_id.hex())
        return False


class CallableProofVerifier:
    """Adapts a plain function with the ``verify`` signature."""

    def __init__(self, func: Callable[..., bool]):
        self._func = func

    def verify(self, kind: ChallengeKind, position: LogPosition, *proofs: bytes) -> bool:
        return bool(self._func(kind, position, *proofs))


def load_proof_verifier(path: str) -> ProofVerifier:
    """Resolve a verifier from configuration.

    Args:
        path: ``"reject"`` or a ``"package.module:attribute"`` path. The
            attribute may be a verifier instance, a verifier class (it is
            instantiated without arguments) or a plain function.

    Raises:
        ConfigException: If the path cannot be imported or resolved.
    """
    if path == "reject":
        return RejectingProofVerifier()

    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigException(f"Proof verifier must be 'reject' or 'module:attribute', got {path!r}", setting="proof_verifier")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigException(f"Cannot load proof verifier {path!r}: {e}", setting="proof_verifier") from e

    if isinstance(target, type):
        target = target()
    if isinstance(target, ProofVerifier):
        return target
    if callable(target):
        return CallableProofVerifier(target)
    raise ConfigException(f"{path!r} is not a proof verifier", setting="proof_verifier")
