"""Exclusive lock around the local state file.

Lifecycle calls for the same object must not interleave; the engine holds
this lock for the whole of a plan-with-refresh, apply, refresh or import.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from rest_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]


def _lock(f: TextIO) -> None:
    if fcntl is not None:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
    elif sys.platform == "win32":  # pragma: no cover
        import msvcrt

        msvcrt.locking(f.fileno(), msvcrt.LK_LOCK, 1)
    else:  # pragma: no cover
        raise StateLockError("State locking is not supported on this platform")


def _unlock(f: TextIO) -> None:
    if fcntl is not None:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    elif sys.platform == "win32":  # pragma: no cover
        import msvcrt

        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)


class StateLock:
    """Holds ``<state>.lock`` exclusively for the lifetime of the context."""

    def __init__(self, state_path: Path) -> None:
        self.lock_path = Path(f"{state_path}.lock")
        self._file: TextIO | None = None

    def __enter__(self) -> StateLock:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        f = self.lock_path.open("a+", encoding="utf-8")
        try:
            _lock(f)
        except Exception as e:
            f.close()
            raise StateLockError(f"Cannot lock {self.lock_path}: {e}") from e
        self._file = f
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        f, self._file = self._file, None
        if f is None:
            return
        try:
            _unlock(f)
        finally:
            f.close()
