"""Status- und Log-Abfragen für `webstack cron status` / `webstack cron logs`.

Reine Lesesichten; verändert werden Metadaten nur durch das vorgelagerte
reconcile() des Aufrufers.
"""

from __future__ import annotations

import os
import re
import subprocess
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from webstack.core.errors import CronIOError, ValidationError
from webstack.models import CronJob, CronStatus
from webstack.utils.logging import get_logger
from webstack.utils.process import CommandRunner, run_command

log = get_logger(__name__)

DEFAULT_LOG_LINES = 50


def _is_cron_line(line: str) -> bool:
    return "cron" in line.lower()


class StatusService:
    """Zählt Jobs, prüft den Cron-Daemon und liest das Cron-Log.

    Attributes:
        app_name: Substring, an dem WebStack-Befehle erkannt werden.
        log_files: Kandidaten in Prioritätsreihenfolge; die erste
            vorhandene Datei wird gelesen.
    """

    def __init__(
        self,
        app_name: str = "webstack",
        systemctl: str = "systemctl",
        daemon_unit: str = "cron",
        log_files: Iterable[Path | str] = (Path("/var/log/cron"), Path("/var/log/syslog")),
        window_bytes: int = 1024 * 1024,
        runner: CommandRunner = run_command,
    ) -> None:
        self.app_name = app_name
        self.log_files = [Path(p) for p in log_files]
        self.window_bytes = window_bytes
        self._systemctl = systemctl
        self._daemon_unit = daemon_unit
        self._runner = runner

    # ── Status ──────────────────────────────────────────────────────

    def daemon_running(self) -> bool:
        """`systemctl is-active <daemon_unit>` mit Exit-Code 0."""
        try:
            result = self._runner([self._systemctl, "is-active", self._daemon_unit])
        except (OSError, subprocess.SubprocessError) as exc:
            log.debug("daemon_check_failed", unit=self._daemon_unit, error=str(exc))
            return False
        return result.returncode == 0

    @staticmethod
    def last_run_time(jobs: Iterable[CronJob]) -> datetime | None:
        """Erstes gesetztes last_run in Listenreihenfolge (nach ID).

        Das ist nicht zwingend der jüngste Lauf.
        """
        for job in jobs:
            if job.last_run is not None:
                return job.last_run
        return None

    def status(self, jobs: list[CronJob]) -> CronStatus:
        app_jobs = sum(1 for job in jobs if self.app_name in job.command)
        enabled = sum(1 for job in jobs if job.enabled)
        return CronStatus(
            total_jobs=len(jobs),
            app_jobs=app_jobs,
            custom_jobs=len(jobs) - app_jobs,
            enabled_jobs=enabled,
            disabled_jobs=len(jobs) - enabled,
            daemon_running=self.daemon_running(),
            last_job_time=self.last_run_time(jobs),
        )

    # ── Logs ────────────────────────────────────────────────────────

    def log_file(self) -> Path | None:
        for path in self.log_files:
            if path.is_file():
                return path
        return None

    def _tail(self, path: Path) -> list[str]:
        """Letzte window_bytes des Logs als Zeilen (erste Teilzeile verworfen)."""
        try:
            with open(path, "rb") as f:
                size = f.seek(0, os.SEEK_END)
                offset = max(0, size - self.window_bytes)
                f.seek(offset)
                data = f.read()
        except OSError as exc:
            raise CronIOError(
                f"cannot read log file {path}: {exc}",
                details={"path": str(path), "cause": str(exc)},
            ) from exc

        lines = data.decode("utf-8", errors="replace").splitlines()
        if offset > 0 and lines:
            lines = lines[1:]
        return lines

    def logs(self, lines: int = DEFAULT_LOG_LINES, pattern: str = "") -> list[str]:
        """Die letzten `lines` Cron-Zeilen, optional per Regex gefiltert.

        Raises:
            ValidationError: Ungültiger Regex oder lines < 1.
            CronIOError: Keine Log-Datei vorhanden oder nicht lesbar.
        """
        if lines < 1:
            raise ValidationError(f"line count must be positive: {lines}", details={"lines": lines})
        try:
            regex = re.compile(pattern) if pattern else None
        except re.error as exc:
            raise ValidationError(
                f"invalid filter pattern: {pattern}",
                details={"pattern": pattern, "cause": str(exc)},
            ) from exc

        path = self.log_file()
        if path is None:
            raise CronIOError(
                "no cron log found",
                details={"candidates": [str(p) for p in self.log_files]},
            )

        matched = [
            line for line in self._tail(path)
            if _is_cron_line(line) and (regex is None or regex.search(line))
        ]
        return matched[-lines:]
