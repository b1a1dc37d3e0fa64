"""Subprozess-Aufrufe für crontab und systemctl.

Alle Module rufen externe Programme über einen `CommandRunner` auf, damit
Tests `crontab`/`systemctl` durch Fakes ersetzen können.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence

# Timeout für Verwaltungsbefehle (crontab, systemctl), nicht für Jobs
DEFAULT_COMMAND_TIMEOUT = 30.0

CommandRunner = Callable[[Sequence[str]], "subprocess.CompletedProcess[str]"]


def run_command(args: Sequence[str]) -> subprocess.CompletedProcess[str]:
    """Führt ein Programm ohne Shell aus und liefert stdout/stderr als Text.

    Raises:
        OSError: Programm nicht gefunden oder nicht startbar.
        subprocess.TimeoutExpired: Nach DEFAULT_COMMAND_TIMEOUT Sekunden.
    """
    return subprocess.run(
        list(args),
        capture_output=True,
        text=True,
        timeout=DEFAULT_COMMAND_TIMEOUT,
        check=False,
    )
