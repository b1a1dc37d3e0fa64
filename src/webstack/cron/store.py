"""Metadaten-Store: ein JSON-Datensatz pro Cron-Job.

Jeder Job liegt in einer eigenen Datei ``job-<id>.json``. Ein Absturz
während eines Schreibvorgangs betrifft damit höchstens diesen einen Job;
geschrieben wird zusätzlich atomar über eine temporäre Datei + rename.
"""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from webstack.core.errors import JobNotFoundError, StoreError
from webstack.models import CronJob
from webstack.utils.logging import get_logger

log = get_logger(__name__)

_RECORD_RE = re.compile(r"^job-(\d+)\.json$")


def record_name(job_id: int) -> str:
    return f"job-{job_id}.json"


class MetadataStore:
    """CRUD auf den Job-Datensätzen in einem Verzeichnis.

    Attributes:
        directory: Verzeichnis mit den ``job-<id>.json`` Dateien.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, job_id: int) -> Path:
        return self.directory / record_name(job_id)

    def _record_ids(self) -> list[int]:
        if not self.directory.is_dir():
            return []
        ids: list[int] = []
        for entry in self.directory.iterdir():
            match = _RECORD_RE.match(entry.name)
            if match:
                ids.append(int(match.group(1)))
        return sorted(ids)

    # ── ID-Vergabe ──────────────────────────────────────────────────

    def allocate_id(self) -> int:
        """Nächste freie ID: größte vorhandene ID + 1, oder 1.

        Lücken werden nicht wiederverwendet. Aufrufer müssen
        allocate_id() + create() unter dem ScheduleLock ausführen.
        """
        ids = self._record_ids()
        return (ids[-1] + 1) if ids else 1

    # ── CRUD ────────────────────────────────────────────────────────

    def exists(self, job_id: int) -> bool:
        return self._path(job_id).is_file()

    def create(self, job: CronJob) -> CronJob:
        """Legt den Datensatz an. Eine vorhandene Datei gleicher ID ist ein Fehler."""
        if self.exists(job.id):
            raise StoreError(
                f"job record already exists: {job.id}",
                details={"job_id": job.id},
            )
        self._write(job)
        log.debug("job_record_created", job_id=job.id, source=job.source)
        return job

    def read(self, job_id: int) -> CronJob:
        """Lädt einen Job.

        Raises:
            JobNotFoundError: Kein Datensatz für job_id.
            StoreError: Datei nicht lesbar oder kein gültiger Job.
        """
        path = self._path(job_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise JobNotFoundError(f"job not found: {job_id}", details={"job_id": job_id}) from None
        except OSError as exc:
            raise StoreError(
                f"cannot read job record {path}: {exc}",
                details={"job_id": job_id, "cause": str(exc)},
            ) from exc

        try:
            return CronJob.model_validate_json(raw)
        except PydanticValidationError as exc:
            raise StoreError(
                f"corrupt job record {path}",
                details={"job_id": job_id, "cause": str(exc)},
            ) from exc

    def update(self, job: CronJob) -> CronJob:
        """Überschreibt einen vorhandenen Datensatz."""
        if not self.exists(job.id):
            raise JobNotFoundError(f"job not found: {job.id}", details={"job_id": job.id})
        self._write(job)
        return job

    def delete(self, job_id: int) -> None:
        try:
            self._path(job_id).unlink()
        except FileNotFoundError:
            raise JobNotFoundError(f"job not found: {job_id}", details={"job_id": job_id}) from None
        except OSError as exc:
            raise StoreError(
                f"cannot delete job record {job_id}: {exc}",
                details={"job_id": job_id, "cause": str(exc)},
            ) from exc
        log.debug("job_record_deleted", job_id=job_id)

    # ── Abfragen ────────────────────────────────────────────────────

    def list(self, app_only: bool = False, marker: str = "") -> list[CronJob]:
        """Alle Jobs aufsteigend nach ID.

        Args:
            app_only: Nur Jobs, deren Befehl `marker` enthält.
            marker: Erkennungs-Substring der Anwendung (z.B. "webstack").

        Unlesbare oder kaputte Datensätze werden übersprungen.
        """
        jobs: list[CronJob] = []
        for job_id in self._record_ids():
            try:
                job = self.read(job_id)
            except (JobNotFoundError, StoreError) as exc:
                log.warning("job_record_skipped", job_id=job_id, error=str(exc))
                continue
            if app_only and marker not in job.command:
                continue
            jobs.append(job)
        return jobs

    def find(self, schedule: str, command: str) -> CronJob | None:
        """Erster Job mit identischem (schedule, command)-Paar."""
        for job in self.list():
            if job.matches(schedule, command):
                return job
        return None

    # ── Intern ──────────────────────────────────────────────────────

    def _write(self, job: CronJob) -> None:
        """Schreibt atomar via temporäre Datei im selben Verzeichnis."""
        path = self._path(job.id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.directory),
                prefix=".job_write_",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(job.model_dump_json(indent=2))
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, path)
            except Exception:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise StoreError(
                f"cannot write job record {path}: {exc}",
                details={"job_id": job.id, "cause": str(exc)},
            ) from exc
