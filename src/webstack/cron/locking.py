"""Single-Writer-Abschnitt für Metadaten und Crontab.

Schützt ID-Vergabe + Anlegen sowie Lesen + Installieren der Crontab vor
parallelen webstack-Aufrufen. Advisory Lock via ``fcntl.flock`` auf einer
Lock-Datei; pro Instanz reentrant, damit Operationen, die intern
`reconcile()` aufrufen, den Lock nicht erneut anfordern.
"""

from __future__ import annotations

import fcntl
import os
import threading
from pathlib import Path
from types import TracebackType

from webstack.core.errors import CronIOError
from webstack.utils.logging import get_logger

log = get_logger(__name__)


class ScheduleLock:
    """Reentranter, prozessübergreifender Lock.

    Usage::

        lock = ScheduleLock(config.lock_file)
        with lock:
            ...
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._mutex = threading.RLock()
        self._depth = 0
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._depth > 0

    def acquire(self) -> None:
        self._mutex.acquire()
        if self._depth == 0:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
            except OSError as exc:
                self._mutex.release()
                raise CronIOError(
                    f"cannot open lock file {self.path}: {exc}",
                    details={"path": str(self.path), "cause": str(exc)},
                ) from exc
            try:
                # Blockiert, bis ein anderer webstack-Prozess fertig ist
                fcntl.flock(fd, fcntl.LOCK_EX)
            except OSError as exc:
                os.close(fd)
                self._mutex.release()
                raise CronIOError(
                    f"cannot lock {self.path}: {exc}",
                    details={"path": str(self.path), "cause": str(exc)},
                ) from exc
            self._fd = fd
            log.debug("schedule_lock_acquired", path=str(self.path))
        self._depth += 1

    def release(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0 and self._fd is not None:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                os.close(self._fd)
                self._fd = None
            log.debug("schedule_lock_released", path=str(self.path))
        self._mutex.release()

    def __enter__(self) -> ScheduleLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
