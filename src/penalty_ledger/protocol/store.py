"""Ledger state and its storage backends.

The whole ledger - every challenge record, the stake pool and the
history of superseded records - is one immutable ``LedgerState`` value
with a version number. The registry builds the next state from the
current one and commits it in a single step, so a failed call never
leaves a partial change behind.

Backends:
    memory  In-process only (default; tests and embedding hosts)
    file    JSON file replaced atomically on every commit, guarded by an
            inter-process file lock (CLI)

Configure via PENALTY_STORE and PENALTY_STATE_PATH.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import IO, TYPE_CHECKING, Any

from ..core.exceptions import ConflictError, PenaltyException
from .challenges import Challenge
from .stake_pool import StakePool

if TYPE_CHECKING:
    from ..core.config import LedgerSettings

logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


@dataclass(frozen=True)
class LedgerState:
    """A committed snapshot of the ledger."""

    version: int = 0
    pool: StakePool = field(default_factory=StakePool)
    challenges: Mapping[str, Challenge] = field(default_factory=lambda: MappingProxyType({}))
    history: tuple[Challenge, ...] = ()
    last_seen: datetime | None = None

    def with_challenge(self, challenge: Challenge) -> LedgerState:
        challenges = dict(self.challenges)
        challenges[challenge.id] = challenge
        return replace(self, challenges=MappingProxyType(challenges))

    def with_pool(self, pool: StakePool) -> LedgerState:
        return replace(self, pool=pool)

    def with_history(self, history: tuple[Challenge, ...]) -> LedgerState:
        return replace(self, history=history)

    def next_version(self, now: datetime) -> LedgerState:
        return replace(self, version=self.version + 1, last_seen=now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": STATE_FORMAT_VERSION,
            "version": self.version,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
            "pool": self.pool.to_dict(),
            "challenges": [c.to_dict() for c in self.challenges.values()],
            "history": [c.to_dict() for c in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerState:
        if data.get("format") != STATE_FORMAT_VERSION:
            raise PenaltyException(f"Unsupported ledger state format: {data.get('format')}")
        challenges = {c["id"]: Challenge.from_dict(c) for c in data.get("challenges", [])}
        return cls(
            version=data["version"],
            pool=StakePool.from_dict(data["pool"]),
            challenges=MappingProxyType(challenges),
            history=tuple(Challenge.from_dict(c) for c in data.get("history", [])),
            last_seen=datetime.fromisoformat(data["last_seen"]) if data.get("last_seen") else None,
        )


class LedgerStore(ABC):
    """Abstract interface for ledger state persistence."""

    @abstractmethod
    def load(self) -> LedgerState:
        """Return the latest committed state (an empty state if none)."""
        ...

    @abstractmethod
    def commit(self, state: LedgerState) -> None:
        """Persist ``state`` as the new latest state.

        Args:
            state: Must carry exactly the committed version plus one.

        Raises:
            ConflictError: If another writer committed in between.
        """
        ...

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold exclusive access to the store across load and commit.

        Backends shared between processes override this. The default is
        a no-op, which is enough when the caller already serialises access.
        """
        yield


def _check_version(current: LedgerState, new: LedgerState) -> None:
    if new.version != current.version + 1:
        raise ConflictError(
            f"Ledger state moved on: committed version is {current.version}, "
            f"attempted to commit version {new.version}"
        )


class MemoryLedgerStore(LedgerStore):
    """Keeps the committed state in memory. Lost when the process exits."""

    def __init__(self, initial: LedgerState | None = None) -> None:
        self._state = initial or LedgerState()

    def load(self) -> LedgerState:
        return self._state

    def commit(self, state: LedgerState) -> None:
        _check_version(self._state, state)
        self._state = state


class JsonFileLedgerStore(LedgerStore):
    """Stores the state as a JSON document.

    Each commit writes a temporary file next to the target and renames it
    over the target, so readers see either the old or the new state.

    ``transaction()`` takes an exclusive ``flock`` on a sidecar
    ``<path>.lock`` file. Every handle on the same path, in this process
    or another, waits for it, so load-check-commit is one atomic step.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._lock = threading.RLock()
        self._depth = 0
        self._lock_file: IO[str] | None = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth == 0:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self.lock_path, "a")
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                except BaseException:
                    lock_file.close()
                    raise
                self._lock_file = lock_file
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0 and self._lock_file is not None:
                    try:
                        fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
                    finally:
                        self._lock_file.close()
                        self._lock_file = None

    def load(self) -> LedgerState:
        if not self.path.exists():
            return LedgerState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise PenaltyException(f"Corrupt ledger state file {self.path}: {e}") from e
        return LedgerState.from_dict(data)

    def commit(self, state: LedgerState) -> None:
        _check_version(self.load(), state)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Committed ledger version %d to %s", state.version, self.path)


def get_ledger_store(settings: LedgerSettings) -> LedgerStore:
    """Build the store selected by ``settings.store_backend``."""
    if settings.store_backend == "file":
        logger.info("Using JSON file ledger store at %s", settings.state_path)
        return JsonFileLedgerStore(settings.state_path)
    logger.info("Using in-memory ledger store")
    return MemoryLedgerStore()
