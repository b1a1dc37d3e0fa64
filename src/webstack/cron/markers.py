"""Marker-Kommentare in der Crontab.

Jeder verwaltete Eintrag besteht aus zwei Zeilen::

    # webstack-job-7
    0 2 * * * /usr/local/bin/webstack backup create --all

Format: ``# <prefix>-<tag>-<id>``. Der Tag ist ``job`` für manuell
angelegte Jobs, sonst der Name des Subsystems (``backup``, ``ssl``, ...).
Schreib- und Lesepfade verwenden ausschließlich `Marker.encode()` und
`Marker.parse()`.
"""

from __future__ import annotations

from dataclasses import dataclass

from webstack.models import JobSource

MANUAL_TAG = "job"


@dataclass(frozen=True)
class Marker:
    """Ein geparster Marker: Präfix, Quelle und Job-ID."""

    prefix: str
    source: str
    job_id: int

    @property
    def tag(self) -> str:
        return MANUAL_TAG if self.source == JobSource.MANUAL else self.source

    def encode(self) -> str:
        """Marker-Zeile ohne Zeilenumbruch."""
        return f"# {self.prefix}-{self.tag}-{self.job_id}"

    @classmethod
    def parse(cls, line: str, prefix: str) -> Marker | None:
        """Parst eine ganze Zeile; None wenn sie kein Marker mit diesem Präfix ist.

        Die ID steht nach dem letzten Bindestrich, der Tag darf selbst
        Bindestriche enthalten (``# webstack-backup-cleanup-3``).
        """
        stripped = line.strip()
        if not stripped.startswith("#"):
            return None
        body = stripped[1:].strip()
        head = f"{prefix}-"
        if not body.startswith(head):
            return None
        tag, sep, id_text = body[len(head):].rpartition("-")
        if not sep or not tag or not (id_text.isascii() and id_text.isdigit()):
            return None
        job_id = int(id_text)
        if job_id < 1:
            return None
        source = JobSource.MANUAL.value if tag == MANUAL_TAG else tag
        return cls(prefix=prefix, source=source, job_id=job_id)


def is_comment_or_blank(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#")
