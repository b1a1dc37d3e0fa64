"""Job-Executor: führt einen Job sofort aus (`webstack cron run <id>`).

Der Befehl läuft synchron über ``sh -c``; stdout und stderr werden
zusammen erfasst. Nur Zeitpunkt und Exit-Code landen in den Metadaten,
die Ausgabe geht an den Aufrufer zurück.
"""

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import time
from datetime import UTC, datetime

from webstack.cron.store import MetadataStore
from webstack.models import RunResult
from webstack.utils.logging import get_logger

log = get_logger(__name__)

# Konvention von timeout(1) bzw. der Shell
EXIT_TIMED_OUT = 124
EXIT_NOT_STARTED = 127

MAX_LOG_COMMAND_LENGTH = 200


def _decode(data: bytes | str | None) -> str:
    if not data:
        return ""
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1", errors="replace")


class JobExecutor:
    """Führt Jobs mit Timeout aus und schreibt last_run/last_status zurück.

    Attributes:
        timeout_seconds: Maximale Laufzeit; danach wird der Prozess beendet.
    """

    def __init__(
        self,
        store: MetadataStore,
        timeout_seconds: float = 3600.0,
        shell: str = "sh",
    ) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds
        self._shell = shell

    def execute(self, job_id: int, command: str) -> RunResult:
        """Startet den Befehl und wartet auf das Ende (oder den Timeout)."""
        started = datetime.now(UTC)
        t0 = time.monotonic()
        log.info("job_run_started", job_id=job_id, command=command[:MAX_LOG_COMMAND_LENGTH])

        timed_out = False
        try:
            # Eigene Session, damit beim Timeout die ganze Prozessgruppe stirbt
            proc = subprocess.Popen(
                [self._shell, "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            exit_code = EXIT_NOT_STARTED
            output = f"failed to start: {exc}"
        else:
            try:
                stdout, _ = proc.communicate(timeout=self.timeout_seconds)
                exit_code = proc.returncode
            except subprocess.TimeoutExpired:
                timed_out = True
                with contextlib.suppress(ProcessLookupError):
                    os.killpg(proc.pid, signal.SIGKILL)
                stdout, _ = proc.communicate()
                exit_code = EXIT_TIMED_OUT
            output = _decode(stdout)

        duration = time.monotonic() - t0
        if timed_out:
            log.warning("job_run_timed_out", job_id=job_id, timeout=self.timeout_seconds)
        else:
            log.info("job_run_finished", job_id=job_id, exit_code=exit_code, duration=round(duration, 3))

        return RunResult(
            job_id=job_id,
            exit_code=exit_code,
            output=output,
            timed_out=timed_out,
            started=started,
            duration_seconds=duration,
        )

    def record(self, result: RunResult) -> None:
        """Schreibt last_run/last_status; der Job wird dafür neu geladen."""
        current = self.store.read(result.job_id)
        self.store.update(
            current.model_copy(update={"last_run": result.started, "last_status": result.exit_code}),
        )
