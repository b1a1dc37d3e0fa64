"""Tests für ScheduleLock – reentrant, prozessübergreifend."""

from __future__ import annotations

import fcntl
import os
import threading
from typing import TYPE_CHECKING

import pytest

from webstack.core.errors import CronIOError
from webstack.cron.locking import ScheduleLock

if TYPE_CHECKING:
    from pathlib import Path


class TestScheduleLock:
    def test_context_manager(self, tmp_path: Path) -> None:
        lock = ScheduleLock(tmp_path / "meta" / ".lock")
        with lock:
            assert lock.held
            assert (tmp_path / "meta" / ".lock").exists()
        assert not lock.held

    def test_reentrant(self, tmp_path: Path) -> None:
        lock = ScheduleLock(tmp_path / ".lock")
        with lock:
            with lock:
                assert lock.held
            assert lock.held
        assert not lock.held

    def test_release_without_acquire(self, tmp_path: Path) -> None:
        ScheduleLock(tmp_path / ".lock").release()

    def test_excludes_other_holders(self, tmp_path: Path) -> None:
        path = tmp_path / ".lock"
        lock = ScheduleLock(path)
        with lock:
            fd = os.open(path, os.O_RDWR)
            try:
                with pytest.raises(BlockingIOError):
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            finally:
                os.close(fd)

        fd = os.open(path, os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def test_serializes_threads(self, tmp_path: Path) -> None:
        lock = ScheduleLock(tmp_path / ".lock")
        order: list[str] = []
        pause = threading.Event()

        def worker() -> None:
            with lock:
                order.append("worker")

        with lock:
            thread = threading.Thread(target=worker)
            thread.start()
            pause.wait(0.2)
            order.append("main")
        thread.join(timeout=5)
        assert order == ["main", "worker"]

    def test_unopenable_path(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        lock = ScheduleLock(blocker / ".lock")
        with pytest.raises(CronIOError):
            lock.acquire()
        assert not lock.held
