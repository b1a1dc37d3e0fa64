"""
webstack · Shared Test-Fixtures.

Alle Tests nutzen ein temporäres Verzeichnis statt /etc/webstack und
/var/spool/cron. `crontab` und `systemctl` werden durch FakeSystem ersetzt.
"""

from __future__ import annotations

import json
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from webstack.config import CronConfig, LoggingConfig, WebstackConfig
from webstack.cron.crontab import CrontabAdapter
from webstack.cron.reconcile import Reconciler
from webstack.cron.service import CronService
from webstack.cron.store import MetadataStore
from webstack.cron.timers import TimerScanner


class FakeSystem:
    """Emuliert `crontab <file>` und die benutzten systemctl-Aufrufe.

    Attributes:
        crontab_file: Ziel, in das `crontab` installiert.
        timers: Einträge für `systemctl list-timers --output=json`.
        calendars: Unit → Ausgabe von `systemctl show -p TimersCalendar`.
        triggers: Unit → Ausgabe von `systemctl show -p Triggers`.
        listing_output: Überschreibt die JSON-Ausgabe von list-timers.
        install_fails: `crontab` endet mit Exit-Code 1.
        daemon_active: Ergebnis von `systemctl is-active`.
        calls: Alle Aufrufe in Reihenfolge.
    """

    def __init__(self, crontab_file: Path) -> None:
        self.crontab_file = crontab_file
        self.timers: list[dict[str, Any]] = []
        self.calendars: dict[str, str] = {}
        self.triggers: dict[str, str] = {}
        self.listing_output: str | None = None
        self.listing_fails = False
        self.install_fails = False
        self.daemon_active = True
        self.calls: list[list[str]] = []

    def add_timer(self, unit: str, calendar: str, service: str = "", activates: str = "") -> None:
        item: dict[str, Any] = {"unit": unit, "next": None, "last": None}
        if activates:
            item["activates"] = activates
        self.timers.append(item)
        self.calendars[unit] = calendar
        if service:
            self.triggers[unit] = service

    @property
    def installs(self) -> list[list[str]]:
        return [c for c in self.calls if c[0] == "crontab"]

    def __call__(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        argv = list(args)
        self.calls.append(argv)
        if argv[0] == "crontab":
            return self._crontab(argv)
        if argv[0] == "systemctl":
            return self._systemctl(argv)
        return subprocess.CompletedProcess(argv, 127, "", "not found")

    def _crontab(self, argv: list[str]) -> subprocess.CompletedProcess[str]:
        if self.install_fails:
            return subprocess.CompletedProcess(argv, 1, "", "crontab: installation failed")
        source = Path(argv[-1])
        self.crontab_file.parent.mkdir(parents=True, exist_ok=True)
        self.crontab_file.write_text(source.read_text(encoding="utf-8"), encoding="utf-8")
        return subprocess.CompletedProcess(argv, 0, "", "")

    def _systemctl(self, argv: list[str]) -> subprocess.CompletedProcess[str]:
        verb = argv[1]
        if verb == "is-active":
            code = 0 if self.daemon_active else 3
            return subprocess.CompletedProcess(argv, code, "active\n" if code == 0 else "inactive\n", "")
        if verb == "list-timers":
            if self.listing_fails:
                return subprocess.CompletedProcess(argv, 1, "", "Failed to connect to bus")
            output = self.listing_output if self.listing_output is not None else json.dumps(self.timers)
            return subprocess.CompletedProcess(argv, 0, output, "")
        if verb == "show":
            unit, prop = argv[2], argv[4]
            if unit not in self.calendars:
                return subprocess.CompletedProcess(argv, 1, "", "no such unit")
            if prop == "TimersCalendar":
                return subprocess.CompletedProcess(argv, 0, self.calendars[unit] + "\n", "")
            if prop == "Triggers":
                return subprocess.CompletedProcess(argv, 0, self.triggers.get(unit, "") + "\n", "")
            return subprocess.CompletedProcess(argv, 0, "\n", "")
        return subprocess.CompletedProcess(argv, 1, "", "unknown verb")


@pytest.fixture
def config(tmp_path: Path) -> WebstackConfig:
    """WebstackConfig mit temporären Pfaden."""
    return WebstackConfig(
        cron=CronConfig(
            metadata_dir=tmp_path / "etc" / "cron",
            crontab_file=tmp_path / "spool" / "root",
            log_files=[tmp_path / "log" / "cron", tmp_path / "log" / "syslog"],
            run_timeout_seconds=10,
            require_root=False,
        ),
        logging=LoggingConfig(console=False),
    )


@pytest.fixture
def fake_system(config: WebstackConfig) -> FakeSystem:
    return FakeSystem(config.cron.crontab_file)


@pytest.fixture
def store(config: WebstackConfig) -> MetadataStore:
    return MetadataStore(config.cron.metadata_dir)


@pytest.fixture
def crontab(config: WebstackConfig, fake_system: FakeSystem) -> CrontabAdapter:
    return CrontabAdapter(config.cron.crontab_file, prefix="webstack", runner=fake_system)


@pytest.fixture
def scanner(fake_system: FakeSystem) -> TimerScanner:
    return TimerScanner(prefix="webstack", runner=fake_system)


@pytest.fixture
def reconciler(store: MetadataStore, crontab: CrontabAdapter, scanner: TimerScanner) -> Reconciler:
    return Reconciler(store, crontab, scanner, app_name="webstack", auto_patterns=["webstack-backup-cleanup"])


@pytest.fixture
def service(config: WebstackConfig, fake_system: FakeSystem) -> CronService:
    return CronService.from_config(config, runner=fake_system)


@pytest.fixture
def set_crontab(config: WebstackConfig) -> Callable[[str], None]:
    """Live-Crontab direkt setzen (wie ein Admin mit `crontab -e`)."""

    def _set(text: str) -> None:
        path = config.cron.crontab_file
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    return _set


@pytest.fixture
def get_crontab(config: WebstackConfig) -> Callable[[], str]:
    """Aktueller Inhalt der Live-Crontab ("" wenn keine existiert)."""

    def _get() -> str:
        path = config.cron.crontab_file
        return path.read_text(encoding="utf-8") if path.exists() else ""

    return _get
