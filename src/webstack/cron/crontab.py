"""Crontab-Adapter: liest und installiert die Live-Crontab.

Die Crontab wird als Text behandelt. Einzige Invariante: jeder verwaltete
Eintrag steht direkt unter seiner Marker-Zeile. Installiert wird nie durch
Bearbeiten der Spool-Datei, sondern über ``crontab <tmpfile>``.
"""

from __future__ import annotations

import contextlib
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from webstack.core.errors import CrontabError
from webstack.cron.markers import Marker, is_comment_or_blank
from webstack.models import CRON_FIELD_COUNT, CronJob
from webstack.utils.logging import get_logger
from webstack.utils.process import CommandRunner, run_command

log = get_logger(__name__)

_BLANK_RUNS = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class CrontabLine:
    """Eine Job-Zeile der Crontab mit optionalem Marker darüber."""

    index: int
    schedule: str
    command: str
    marker: Marker | None = None


def split_line(line: str) -> tuple[str, str] | None:
    """Zerlegt ``m h dom mon dow command`` in (schedule, command).

    Kommentare, Leerzeilen und Zeilen mit weniger als sechs Feldern
    ergeben None. Der Befehl bleibt so erhalten, wie er in der Zeile steht.
    """
    if is_comment_or_blank(line):
        return None
    parts = line.strip().split(None, CRON_FIELD_COUNT)
    if len(parts) <= CRON_FIELD_COUNT:
        return None
    # NAME=value und @reboot/@daily-Kurzformen sind keine Fünf-Feld-Zeilen
    if "=" in parts[0] or parts[0].startswith("@"):
        return None
    return " ".join(parts[:CRON_FIELD_COUNT]), parts[CRON_FIELD_COUNT]


class CrontabAdapter:
    """Lese-/Schreibzugriff auf die Crontab eines Benutzers.

    Attributes:
        path: Spool-Datei der Live-Crontab (nur gelesen).
        prefix: Präfix der Marker-Kommentare.
    """

    def __init__(
        self,
        path: Path | str,
        prefix: str = "webstack",
        installer: str = "crontab",
        user: str = "",
        runner: CommandRunner = run_command,
    ) -> None:
        self.path = Path(path)
        self.prefix = prefix
        self._installer = installer
        self._user = user
        self._runner = runner

    # ── Lesen / Schreiben ───────────────────────────────────────────

    def read(self) -> str:
        """Aktueller Crontab-Text, leer wenn noch keine Crontab existiert."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except OSError as exc:
            raise CrontabError(
                f"cannot read crontab {self.path}: {exc}",
                details={"path": str(self.path), "cause": str(exc)},
            ) from exc

    def write(self, text: str) -> None:
        """Installiert `text` als neue Crontab.

        Schreibt in eine temporäre Datei und ruft den crontab-Befehl auf.
        Schlägt die Installation fehl, bleibt die alte Crontab unverändert;
        die temporäre Datei wird in jedem Fall entfernt.

        Raises:
            CrontabError: Temp-Datei nicht schreibbar oder crontab fehlgeschlagen.
        """
        tmp_path = ""
        try:
            fd, tmp_path = tempfile.mkstemp(prefix="webstack-crontab-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)

            args = [self._installer]
            if self._user:
                args += ["-u", self._user]
            args.append(tmp_path)

            try:
                result = self._runner(args)
            except (OSError, subprocess.SubprocessError) as exc:
                raise CrontabError(
                    f"failed to install crontab: {exc}",
                    details={"cause": str(exc)},
                ) from exc

            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                raise CrontabError(
                    f"failed to install crontab: exit status {result.returncode}: {stderr}",
                    details={"exit_code": result.returncode, "cause": stderr},
                )
        except OSError as exc:
            raise CrontabError(
                f"cannot stage crontab: {exc}",
                details={"cause": str(exc)},
            ) from exc
        finally:
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)

        log.info("crontab_installed", lines=text.count("\n"))

    # ── Job-Einträge ────────────────────────────────────────────────

    def format_entry(self, job: CronJob) -> str:
        """Marker- und Job-Zeile, jeweils mit Zeilenumbruch."""
        marker = Marker(prefix=self.prefix, source=job.source, job_id=job.id)
        return f"{marker.encode()}\n{job.schedule} {job.command}\n"

    def append_job(self, job: CronJob) -> None:
        """Hängt Marker + Job an. Deaktivierte Jobs werden übersprungen."""
        if not job.enabled:
            return
        content = self.read()
        if content and not content.endswith("\n"):
            content += "\n"
        self.write(content + self.format_entry(job))
        log.info("crontab_job_added", job_id=job.id, schedule=job.schedule)

    def remove_job(self, job_id: int) -> bool:
        """Entfernt Marker und zugehörige Job-Zeile.

        Nach dem Marker wird die nächste Zeile entfernt, die weder Kommentar
        noch leer ist. Alle anderen Zeilen bleiben unverändert.

        Returns:
            True wenn ein Marker gefunden wurde. Ohne Treffer wird nichts
            geschrieben (kein Fehler: deaktivierte Jobs stehen nicht drin).
        """
        content = self.read()
        if not content:
            return False

        kept: list[str] = []
        found = False
        skip_body = False
        for line in content.split("\n"):
            marker = Marker.parse(line, self.prefix)
            if marker is not None and marker.job_id == job_id:
                found = True
                skip_body = True
                continue
            if skip_body and not is_comment_or_blank(line):
                skip_body = False
                continue
            kept.append(line)

        if not found:
            return False

        new_content = _BLANK_RUNS.sub("\n\n", "\n".join(kept))
        self.write(new_content)
        log.info("crontab_job_removed", job_id=job_id)
        return True

    # ── Scan ────────────────────────────────────────────────────────

    def marked_entries(self, content: str | None = None) -> list[CrontabLine]:
        """Marker mit der direkt folgenden Job-Zeile."""
        lines = (self.read() if content is None else content).split("\n")
        entries: list[CrontabLine] = []
        for i, line in enumerate(lines[:-1]):
            marker = Marker.parse(line, self.prefix)
            if marker is None:
                continue
            parsed = split_line(lines[i + 1])
            if parsed is None:
                continue
            schedule, command = parsed
            entries.append(CrontabLine(i + 1, schedule, command, marker))
        return entries

    def job_lines(self, content: str | None = None) -> list[CrontabLine]:
        """Alle Job-Zeilen; `marker` ist gesetzt, wenn die Vorzeile ein Marker ist."""
        lines = (self.read() if content is None else content).split("\n")
        entries: list[CrontabLine] = []
        for i, line in enumerate(lines):
            parsed = split_line(line)
            if parsed is None:
                continue
            marker = Marker.parse(lines[i - 1], self.prefix) if i > 0 else None
            entries.append(CrontabLine(i, parsed[0], parsed[1], marker))
        return entries
