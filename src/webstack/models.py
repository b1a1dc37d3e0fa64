"""
webstack · Datenmodelle der Cron-Verwaltung.

Alle Pydantic-Modelle, die zwischen Store, Crontab, Timer-Scanner und CLI
ausgetauscht werden.

Design-Prinzipien:
  - Ein Job-Datensatz pro Datei, JSON-serialisierbar
  - Immutable (frozen) für reine Ergebnisobjekte (Status, RunResult, Timer)
  - Schedule wird nur auf Feldanzahl geprüft, nicht als Kalender geparst
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

# ============================================================================
# Hilfsfunktionen
# ============================================================================

CRON_FIELD_COUNT = 5

# Go-Nullzeitpunkt, den ältere Metadaten für "nie gelaufen" enthalten
_ZERO_TIME_YEAR = 1


def _utc_now() -> datetime:
    """Aktuelle Zeit in UTC. Einheitlich im gesamten System."""
    return datetime.now(UTC)


def is_valid_schedule(schedule: str) -> bool:
    """True wenn der Ausdruck genau fünf Whitespace-getrennte Felder hat."""
    return len(schedule.split()) == CRON_FIELD_COUNT


def has_line_break(text: str) -> bool:
    """Ein Crontab-Eintrag muss in genau eine Zeile passen."""
    return "\n" in text or "\r" in text


# ============================================================================
# Enums
# ============================================================================


class JobSource(StrEnum):
    """Herkunft eines Jobs.

    MANUAL:   Vom Benutzer über `webstack cron add` angelegt
    BACKUP:   Backup-Subsystem (Timer oder Cleanup-Cron)
    SSL:      Zertifikatserneuerung (certbot)
    DNS:      DNS-Subsystem
    SYSTEMD:  Sonstiger webstack*-Timer
    WEBSTACK: Heuristisch erkannter WebStack-Befehl
    """

    MANUAL = "manual"
    BACKUP = "backup"
    SSL = "ssl"
    DNS = "dns"
    SYSTEMD = "systemd"
    WEBSTACK = "webstack"


# ============================================================================
# Jobs
# ============================================================================


class CronJob(BaseModel):
    """Ein verwalteter Cron-Job.

    `source` ist ein str, kein JobSource: Marker können Tags neuer Subsysteme
    tragen, die hier noch nicht als JobSource bekannt sind.
    """

    id: int = Field(ge=1)
    schedule: str
    command: str = Field(min_length=1)
    description: str = ""
    enabled: bool = True
    created: datetime = Field(default_factory=_utc_now)
    last_run: datetime | None = None
    last_status: int = 0
    source: str = JobSource.MANUAL.value

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        if not is_valid_schedule(value):
            msg = f"invalid crontab schedule format: {value}"
            raise ValueError(msg)
        return " ".join(value.split())

    @field_validator("command")
    @classmethod
    def _check_command(cls, value: str) -> str:
        if has_line_break(value):
            msg = "command must be a single line"
            raise ValueError(msg)
        return value

    @field_validator("last_run")
    @classmethod
    def _drop_zero_time(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.year == _ZERO_TIME_YEAR:
            return None
        return value

    @property
    def is_manual(self) -> bool:
        return self.source == JobSource.MANUAL

    def matches(self, schedule: str, command: str) -> bool:
        """Gleiches (schedule, command)-Paar wie ein Crontab-Eintrag?"""
        return self.schedule == " ".join(schedule.split()) and self.command == command


class TimerEntry(BaseModel, frozen=True):
    """Ein entdeckter Systemd-Timer, bereits in Job-Form übersetzt."""

    unit: str
    service: str
    calendar: str
    schedule: str
    command: str
    description: str
    source: str = JobSource.SYSTEMD.value


# ============================================================================
# Ergebnisse
# ============================================================================


class RunResult(BaseModel, frozen=True):
    """Ergebnis einer manuellen Job-Ausführung."""

    job_id: int
    exit_code: int
    output: str = ""
    timed_out: bool = False
    started: datetime = Field(default_factory=_utc_now)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class CronStatus(BaseModel, frozen=True):
    """Aggregierte Sicht für `webstack cron status`."""

    total_jobs: int = 0
    app_jobs: int = 0
    custom_jobs: int = 0
    enabled_jobs: int = 0
    disabled_jobs: int = 0
    daemon_running: bool = False
    last_job_time: datetime | None = None
