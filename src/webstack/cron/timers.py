"""Timer-Scanner: entdeckt webstack*-Systemd-Timer.

Übersetzt jeden Timer in ein Job-ähnliches `TimerEntry`. Die Übersetzung
von OnCalendar nach Crontab ist verlustbehaftet und deckt nur eine feste
Regeltabelle ab:

    daily              → 0 0 * * *
    weekly             → 0 0 * * 0
    monthly            → 0 0 1 * *
    ... HH:MM[:SS] ... → MM HH * * *
    alles andere       → 0 0 * * *

Discovery ist best-effort: fehlerhafte Ausgaben von systemctl bedeuten
"keine Timer gefunden" und blockieren nie den eigentlichen Befehl.
"""

from __future__ import annotations

import json
import re
import subprocess
from typing import Any

from webstack.models import JobSource, TimerEntry
from webstack.utils.logging import get_logger
from webstack.utils.process import CommandRunner, run_command

log = get_logger(__name__)

DEFAULT_SCHEDULE = "0 0 * * *"

_CALENDAR_KEYWORDS: dict[str, str] = {
    "daily": "0 0 * * *",
    "weekly": "0 0 * * 0",
    "monthly": "0 0 1 * *",
}

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::\d{1,2}(?:\.\d+)?)?$")
# TimersCalendar-Wert: "{ OnCalendar=*-*-* 03:15:00 ; next_elapse=... }"
_ON_CALENDAR_RE = re.compile(r"OnCalendar=([^;}]+)")

# Reihenfolge zählt: erster Treffer gewinnt
_SOURCE_KEYWORDS: list[tuple[tuple[str, ...], JobSource]] = [
    (("backup",), JobSource.BACKUP),
    (("ssl", "certbot"), JobSource.SSL),
    (("dns",), JobSource.DNS),
]


def _time_component(spec: str) -> tuple[str, str] | None:
    for part in spec.split():
        match = _TIME_RE.match(part)
        if match:
            return match.group(1), match.group(2)
    return None


def on_calendar_to_cron(spec: str) -> str:
    """Übersetzt eine OnCalendar-Angabe in einen Fünf-Feld-Ausdruck.

    >>> on_calendar_to_cron("*-*-* 03:15:00")
    '15 3 * * *'
    """
    spec = spec.strip()
    keyword = _CALENDAR_KEYWORDS.get(spec.lower())
    if keyword is not None:
        return keyword

    time_part = _time_component(spec)
    if time_part is not None:
        hour, minute = time_part
        return f"{int(minute)} {int(hour)} * * *"

    return DEFAULT_SCHEDULE


def classify_source(unit_name: str) -> str:
    """Ordnet einen Unit-Namen per Schlüsselwort einem Subsystem zu."""
    lowered = unit_name.lower()
    for keywords, source in _SOURCE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return source.value
    return JobSource.SYSTEMD.value


def extract_calendar_specs(raw: str) -> list[str]:
    """Holt die OnCalendar-Angaben aus der `systemctl show`-Ausgabe."""
    specs = [m.strip() for m in _ON_CALENDAR_RE.findall(raw)]
    if specs:
        return [s for s in specs if s]
    return [line.strip() for line in raw.splitlines() if line.strip()]


def pick_calendar_spec(specs: list[str]) -> str:
    """Bei mehreren OnCalendar-Zeilen gewinnt die erste mit Uhrzeit."""
    for spec in specs:
        if _time_component(spec) is not None:
            return spec
    return specs[0] if specs else ""


class TimerScanner:
    """Fragt systemctl nach Timern mit dem konfigurierten Präfix.

    Attributes:
        prefix: Namenspräfix der Timer-Units (z.B. "webstack").
    """

    def __init__(
        self,
        prefix: str = "webstack",
        systemctl: str = "systemctl",
        runner: CommandRunner = run_command,
    ) -> None:
        self.prefix = prefix
        self._systemctl = systemctl
        self._runner = runner

    def _query(self, *args: str) -> str | None:
        """Führt systemctl aus; None bei Fehler oder Exit-Code != 0."""
        try:
            result = self._runner([self._systemctl, *args])
        except (OSError, subprocess.SubprocessError) as exc:
            log.debug("systemctl_unavailable", args=list(args), error=str(exc))
            return None
        if result.returncode != 0:
            return None
        return result.stdout or ""

    def list_units(self) -> list[dict[str, Any]]:
        """Rohdaten aus `systemctl list-timers --output=json`."""
        output = self._query("list-timers", f"{self.prefix}*", "--all", "--output=json")
        if output is None:
            return []
        try:
            data = json.loads(output)
        except ValueError:
            log.debug("timer_listing_unparseable", output=output[:200])
            return []
        if not isinstance(data, list):
            return []

        units: list[dict[str, Any]] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            unit = item.get("unit")
            if isinstance(unit, str) and unit.startswith(self.prefix):
                units.append(item)
        return units

    def describe(self, unit: str, activates: str = "") -> TimerEntry | None:
        """Kalender und Ziel-Service eines Timers abfragen und übersetzen."""
        timer_unit = unit if unit.endswith(".timer") else f"{unit}.timer"
        name = timer_unit.removesuffix(".timer")

        raw_calendar = self._query("show", timer_unit, "-p", "TimersCalendar", "--value")
        if not raw_calendar or not raw_calendar.strip():
            raw_calendar = self._query("show", timer_unit, "-p", "OnCalendar", "--value")
        if raw_calendar is None:
            return None
        calendar = pick_calendar_spec(extract_calendar_specs(raw_calendar))

        service = activates.strip()
        if not service:
            triggers = self._query("show", timer_unit, "-p", "Triggers", "--value")
            if triggers is None:
                return None
            service = triggers.strip().split()[0] if triggers.strip() else ""
        if not service:
            service = f"{name}.service"

        return TimerEntry(
            unit=timer_unit,
            service=service,
            calendar=calendar,
            schedule=on_calendar_to_cron(calendar),
            command=f"systemctl start {service}",
            description=f"Systemd timer: {service.removesuffix('.service')}",
            source=classify_source(name),
        )

    def scan(self) -> list[TimerEntry]:
        """Alle passenden Timer als TimerEntry; nicht abfragbare werden übersprungen."""
        entries: list[TimerEntry] = []
        for item in self.list_units():
            activates = item.get("activates")
            entry = self.describe(
                item["unit"],
                activates if isinstance(activates, str) else "",
            )
            if entry is None:
                log.debug("timer_skipped", unit=item["unit"])
                continue
            entries.append(entry)
        return entries
