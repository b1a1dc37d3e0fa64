"""Reconciliation: Crontab und Systemd-Timer → Metadaten-Store.

Läuft vor jeder Lese- oder Schreiboperation in drei Durchgängen:

  1. Marker-Sync: ``# webstack-<source>-<id>`` + Job-Zeile, ID noch unbekannt
  2. Heuristik:   WebStack-Befehle ohne passenden (schedule, command)-Datensatz
  3. Timer-Sync:  webstack*-Timer, inkl. Ersetzen alter Datensätze mit
                  fehlerhaft kodiertem Befehl

Jeder Durchgang ist idempotent; ein zweiter Lauf legt nichts Neues an.
Vollständige Scans sind bei einigen hundert Jobs unkritisch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from webstack.cron.crontab import CrontabAdapter, CrontabLine
from webstack.cron.markers import Marker
from webstack.cron.store import MetadataStore
from webstack.cron.timers import TimerScanner, classify_source
from webstack.models import CronJob, JobSource, TimerEntry
from webstack.utils.logging import get_logger

log = get_logger(__name__)

# Überbleibsel der alten Timer-Kodierung (roher TimersCalendar-Wert im Befehl)
_LEGACY_COMMAND_CHARS = ("{", "}")


@dataclass
class ReconcileReport:
    """Welche Job-IDs ein reconcile()-Lauf angelegt oder ersetzt hat."""

    markers: list[int] = field(default_factory=list)
    heuristic: list[int] = field(default_factory=list)
    timers: list[int] = field(default_factory=list)
    replaced: list[int] = field(default_factory=list)

    @property
    def created(self) -> list[int]:
        return [*self.markers, *self.heuristic, *self.timers]

    @property
    def changed(self) -> bool:
        return bool(self.created or self.replaced)


def is_legacy_command(command: str) -> bool:
    return any(c in command for c in _LEGACY_COMMAND_CHARS)


class Reconciler:
    """Führt externe Einträge mit dem Metadaten-Store zusammen.

    Der Aufrufer hält den ScheduleLock, solange reconcile() läuft.
    """

    def __init__(
        self,
        store: MetadataStore,
        crontab: CrontabAdapter,
        scanner: TimerScanner | None = None,
        app_name: str = "webstack",
        auto_patterns: list[str] | None = None,
    ) -> None:
        self.store = store
        self.crontab = crontab
        self.scanner = scanner
        self.app_name = app_name
        self.auto_patterns = list(auto_patterns or [])
        self._app_word = re.compile(rf"\b{re.escape(app_name)}\b")

    # ── Erkennung ───────────────────────────────────────────────────

    def owns_command(self, command: str) -> bool:
        """Gehört der Befehl zu WebStack (Name als Wort oder bekanntes Muster)?"""
        if any(pattern in command for pattern in self.auto_patterns):
            return True
        return bool(self._app_word.search(command))

    def heuristic_source(self, command: str, marker: Marker | None = None) -> str:
        if marker is not None:
            return marker.source
        for pattern in self.auto_patterns:
            if pattern in command:
                source = classify_source(pattern)
                return source if source != JobSource.SYSTEMD else JobSource.WEBSTACK.value
        if self._app_word.search(command):
            return JobSource.WEBSTACK.value
        return JobSource.MANUAL.value

    # ── Durchgänge ──────────────────────────────────────────────────

    def sync_markers(self, content: str | None = None) -> list[int]:
        """Durchgang 1: Marker-Einträge mit unbekannter ID übernehmen."""
        created: list[int] = []
        for entry in self.crontab.marked_entries(content):
            if entry.marker is None:
                continue
            job_id = entry.marker.job_id
            if self.store.exists(job_id) or job_id in created:
                continue
            self.store.create(
                CronJob(
                    id=job_id,
                    schedule=entry.schedule,
                    command=entry.command,
                    description=f"Auto-synced from {entry.marker.source}",
                    source=entry.marker.source,
                )
            )
            created.append(job_id)
            log.info("job_synced_from_marker", job_id=job_id, source=entry.marker.source)
        return created

    def sync_heuristic(self, content: str | None = None) -> list[int]:
        """Durchgang 2: WebStack-Zeilen ohne Datensatz übernehmen."""
        known = self.store.list()
        created: list[int] = []
        for line in self.crontab.job_lines(content):
            if not self._is_candidate(line):
                continue
            if any(job.matches(line.schedule, line.command) for job in known):
                continue
            source = self.heuristic_source(line.command, line.marker)
            job = self.store.create(
                CronJob(
                    id=self.store.allocate_id(),
                    schedule=line.schedule,
                    command=line.command,
                    description=f"Auto-discovered from {source}",
                    source=source,
                )
            )
            known.append(job)
            created.append(job.id)
            log.info("job_discovered", job_id=job.id, source=source, line=line.index + 1)
        return created

    def _is_candidate(self, line: CrontabLine) -> bool:
        return line.marker is not None or self.owns_command(line.command)

    def sync_timers(self, report: ReconcileReport | None = None) -> list[int]:
        """Durchgang 3: Systemd-Timer übernehmen, Altlasten ersetzen."""
        if self.scanner is None:
            return []
        try:
            entries = self.scanner.scan()
        except Exception as exc:  # noqa: BLE001 -- Discovery darf nie blockieren
            log.warning("timer_sync_skipped", error=str(exc))
            return []

        created: list[int] = []
        for entry in entries:
            known = self.store.list()
            if any(job.matches(entry.schedule, entry.command) for job in known):
                continue
            stale = self._find_legacy(entry, known)
            if stale is not None:
                self.store.delete(stale.id)
                if report is not None:
                    report.replaced.append(stale.id)
                log.info("legacy_timer_job_replaced", job_id=stale.id, unit=entry.unit)
            job = self.store.create(
                CronJob(
                    id=self.store.allocate_id(),
                    schedule=entry.schedule,
                    command=entry.command,
                    description=entry.description,
                    source=entry.source,
                )
            )
            created.append(job.id)
            log.info("job_synced_from_timer", job_id=job.id, unit=entry.unit)
        return created

    @staticmethod
    def _find_legacy(entry: TimerEntry, jobs: list[CronJob]) -> CronJob | None:
        for job in jobs:
            if (
                job.schedule == entry.schedule
                and job.description == entry.description
                and is_legacy_command(job.command)
            ):
                return job
        return None

    def reconcile(self) -> ReconcileReport:
        """Alle drei Durchgänge in fester Reihenfolge."""
        report = ReconcileReport()
        content = self.crontab.read()
        report.markers = self.sync_markers(content)
        report.heuristic = self.sync_heuristic(content)
        report.timers = self.sync_timers(report)
        if report.changed:
            log.info(
                "reconcile_complete",
                created=len(report.created),
                replaced=len(report.replaced),
            )
        return report
