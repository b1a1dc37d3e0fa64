"""CronService: die Operationen hinter `webstack cron ...`.

Jede Operation läuft im ScheduleLock und in dieser Reihenfolge:

  1. Eingaben validieren (Schedule), noch ohne Seiteneffekte
  2. reconcile(): extern angelegte Einträge übernehmen
  3. Metadaten-Store ändern
  4. dieselbe Änderung in der Live-Crontab nachziehen

Schlägt Schritt 4 fehl, weichen Store und Crontab voneinander ab; der
nächste reconcile()-Lauf repariert, was er erkennen kann.
"""

from __future__ import annotations

from webstack.config import WebstackConfig
from webstack.core.errors import InvalidJobStateError, ValidationError
from webstack.cron.crontab import CrontabAdapter
from webstack.cron.executor import JobExecutor
from webstack.cron.locking import ScheduleLock
from webstack.cron.reconcile import ReconcileReport, Reconciler
from webstack.cron.status import DEFAULT_LOG_LINES, StatusService
from webstack.cron.store import MetadataStore
from webstack.cron.timers import TimerScanner
from webstack.models import (
    CronJob,
    CronStatus,
    JobSource,
    RunResult,
    has_line_break,
    is_valid_schedule,
)
from webstack.utils.logging import get_logger
from webstack.utils.process import CommandRunner, run_command

log = get_logger(__name__)


def validate_schedule(schedule: str) -> str:
    """Normalisierter Schedule oder ValidationError."""
    if not is_valid_schedule(schedule):
        raise ValidationError(
            f"invalid crontab schedule format: {schedule}",
            details={"schedule": schedule},
        )
    return " ".join(schedule.split())


def _validate_command(command: str) -> str:
    if not command.strip():
        raise ValidationError("command must not be empty")
    if has_line_break(command):
        raise ValidationError(
            "command must be a single line",
            details={"command": command},
        )
    return command.strip()


class CronService:
    """Fassade über Store, Crontab, Timer-Scanner, Executor und Status."""

    def __init__(
        self,
        store: MetadataStore,
        crontab: CrontabAdapter,
        reconciler: Reconciler,
        executor: JobExecutor,
        status_service: StatusService,
        lock: ScheduleLock,
        app_name: str = "webstack",
    ) -> None:
        self.store = store
        self.crontab = crontab
        self.reconciler = reconciler
        self.executor = executor
        self.status_service = status_service
        self.lock = lock
        self.app_name = app_name

    @classmethod
    def from_config(
        cls,
        config: WebstackConfig,
        runner: CommandRunner = run_command,
    ) -> CronService:
        """Baut den Service aus der Konfiguration zusammen."""
        cfg = config.cron
        store = MetadataStore(cfg.metadata_dir)
        crontab = CrontabAdapter(
            cfg.crontab_file,
            prefix=cfg.app_name,
            installer=cfg.crontab_command,
            user=cfg.crontab_user,
            runner=runner,
        )
        scanner = TimerScanner(prefix=cfg.timer_prefix, systemctl=cfg.systemctl, runner=runner)
        return cls(
            store=store,
            crontab=crontab,
            reconciler=Reconciler(
                store,
                crontab,
                scanner,
                app_name=cfg.app_name,
                auto_patterns=cfg.auto_patterns,
            ),
            executor=JobExecutor(store, timeout_seconds=cfg.run_timeout_seconds),
            status_service=StatusService(
                app_name=cfg.app_name,
                systemctl=cfg.systemctl,
                daemon_unit=cfg.daemon_unit,
                log_files=cfg.log_files,
                window_bytes=cfg.log_window_bytes,
                runner=runner,
            ),
            lock=ScheduleLock(config.lock_file),
            app_name=cfg.app_name,
        )

    # ── Reconciliation ──────────────────────────────────────────────

    def reconcile(self) -> ReconcileReport:
        with self.lock:
            return self.reconciler.reconcile()

    # ── Anlegen / Lesen ─────────────────────────────────────────────

    def create_job(self, schedule: str, command: str, description: str = "") -> CronJob:
        """Legt einen manuellen Job an und trägt ihn in die Crontab ein."""
        schedule = validate_schedule(schedule)
        command = _validate_command(command)
        with self.lock:
            self.reconciler.reconcile()
            job = self.store.create(
                CronJob(
                    id=self.store.allocate_id(),
                    schedule=schedule,
                    command=command,
                    description=description,
                    source=JobSource.MANUAL.value,
                )
            )
            self.crontab.append_job(job)
        log.info("job_created", job_id=job.id, schedule=job.schedule)
        return job

    def list_jobs(self, app_only: bool = False) -> list[CronJob]:
        with self.lock:
            self.reconciler.reconcile()
            return self.store.list(app_only=app_only, marker=self.app_name)

    def list_managed_jobs(self) -> list[CronJob]:
        """Jobs von WebStack-Subsystemen: Quelle nicht manual oder WebStack-Befehl."""
        return [
            job for job in self.list_jobs()
            if not job.is_manual or self.app_name in job.command
        ]

    def get_job(self, job_id: int) -> CronJob:
        with self.lock:
            self.reconciler.reconcile()
            return self.store.read(job_id)

    # ── Ändern ──────────────────────────────────────────────────────

    def update_job(
        self,
        job_id: int,
        schedule: str | None = None,
        command: str | None = None,
        description: str | None = None,
    ) -> CronJob:
        """Ändert Schedule, Befehl und/oder Beschreibung; None oder leer = unverändert.

        Aktive Jobs werden in der Crontab unter derselben ID neu eingetragen.
        """
        changes: dict[str, str] = {}
        if schedule:
            changes["schedule"] = validate_schedule(schedule)
        if command:
            changes["command"] = _validate_command(command)
        if description is not None:
            changes["description"] = description

        with self.lock:
            self.reconciler.reconcile()
            job = self.store.read(job_id)
            updated = self.store.update(job.model_copy(update=changes))
            if updated.enabled:
                self.crontab.remove_job(job_id)
                self.crontab.append_job(updated)
        log.info("job_updated", job_id=job_id, fields=sorted(changes))
        return updated

    def delete_job(self, job_id: int) -> None:
        """Entfernt Crontab-Eintrag (falls vorhanden) und Datensatz."""
        with self.lock:
            self.reconciler.reconcile()
            self.store.read(job_id)
            self.crontab.remove_job(job_id)
            self.store.delete(job_id)
        log.info("job_deleted", job_id=job_id)

    def enable_job(self, job_id: int) -> CronJob:
        with self.lock:
            self.reconciler.reconcile()
            job = self.store.read(job_id)
            if job.enabled:
                raise InvalidJobStateError(
                    f"job {job_id} is already enabled",
                    details={"job_id": job_id},
                )
            job = self.store.update(job.model_copy(update={"enabled": True}))
            self.crontab.append_job(job)
        log.info("job_enabled", job_id=job_id)
        return job

    def disable_job(self, job_id: int) -> CronJob:
        """Entfernt den Job aus der Crontab, der Datensatz bleibt erhalten."""
        with self.lock:
            self.reconciler.reconcile()
            job = self.store.read(job_id)
            if not job.enabled:
                raise InvalidJobStateError(
                    f"job {job_id} is already disabled",
                    details={"job_id": job_id},
                )
            job = self.store.update(job.model_copy(update={"enabled": False}))
            self.crontab.remove_job(job_id)
        log.info("job_disabled", job_id=job_id)
        return job

    # ── Ausführen ───────────────────────────────────────────────────

    def run_job(self, job_id: int) -> RunResult:
        """Führt den Job sofort aus.

        Der Lock wird nicht gehalten, solange der Befehl läuft.
        """
        with self.lock:
            self.reconciler.reconcile()
            job = self.store.read(job_id)
        result = self.executor.execute(job.id, job.command)
        with self.lock:
            self.executor.record(result)
        return result

    # ── Abfragen ────────────────────────────────────────────────────

    def get_status(self) -> CronStatus:
        return self.status_service.status(self.list_jobs())

    def get_logs(self, lines: int = DEFAULT_LOG_LINES, pattern: str = "") -> list[str]:
        return self.status_service.logs(lines=lines, pattern=pattern)

    # ── Subsysteme ──────────────────────────────────────────────────

    def register_system_job(
        self,
        schedule: str,
        command: str,
        description: str,
        source: str,
    ) -> CronJob:
        """Registriert einen Job, den ein Subsystem bereits selbst installiert hat.

        Die Crontab wird nicht angefasst. Existiert das (schedule, command)-Paar
        bereits, wird dieser Datensatz zurückgegeben; ein nur heuristisch als
        "webstack" erkannter Datensatz bekommt dabei Quelle und Beschreibung
        des Subsystems.
        """
        schedule = validate_schedule(schedule)
        command = _validate_command(command)
        with self.lock:
            self.reconciler.reconcile()
            existing = self.store.find(schedule, command)
            if existing is not None:
                if existing.source == source or existing.source != JobSource.WEBSTACK:
                    return existing
                retagged = self.store.update(
                    existing.model_copy(update={"source": source, "description": description}),
                )
                log.info("system_job_retagged", job_id=retagged.id, source=source)
                return retagged
            job = self.store.create(
                CronJob(
                    id=self.store.allocate_id(),
                    schedule=schedule,
                    command=command,
                    description=description,
                    source=source,
                )
            )
        log.info("system_job_registered", job_id=job.id, source=source)
        return job
