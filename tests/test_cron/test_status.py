"""Tests für StatusService – Zählung, Daemon-Check, Cron-Log."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from webstack.core.errors import CronIOError, ValidationError
from webstack.cron.status import StatusService
from webstack.models import CronJob

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import FakeSystem


@pytest.fixture()
def status_service(tmp_path: Path, fake_system: FakeSystem) -> StatusService:
    return StatusService(
        log_files=[tmp_path / "cron.log", tmp_path / "syslog"],
        window_bytes=4096,
        runner=fake_system,
    )


def _job(job_id: int, command: str, **kwargs) -> CronJob:
    return CronJob(id=job_id, schedule="0 2 * * *", command=command, **kwargs)


class TestStatus:
    def test_counts(self, status_service: StatusService) -> None:
        jobs = [
            _job(1, "webstack backup create"),
            _job(2, "/usr/bin/certbot renew", enabled=False),
            _job(3, "webstack ssl renew"),
        ]
        status = status_service.status(jobs)
        assert status.total_jobs == 3
        assert status.app_jobs == 2
        assert status.custom_jobs == 1
        assert status.enabled_jobs == 2
        assert status.disabled_jobs == 1
        assert status.daemon_running is True
        assert status.last_job_time is None

    def test_daemon_inactive(self, status_service: StatusService, fake_system: FakeSystem) -> None:
        fake_system.daemon_active = False
        assert status_service.status([]).daemon_running is False
        assert ["systemctl", "is-active", "cron"] in fake_system.calls

    def test_systemctl_missing(self) -> None:
        def runner(args):
            raise FileNotFoundError(args[0])

        assert StatusService(runner=runner).daemon_running() is False

    def test_last_run_is_first_in_list_order(self) -> None:
        older = datetime(2024, 1, 1, tzinfo=UTC)
        newer = datetime(2024, 6, 1, tzinfo=UTC)
        jobs = [_job(1, "a"), _job(2, "b", last_run=older), _job(3, "c", last_run=newer)]
        assert StatusService.last_run_time(jobs) == older


class TestLogs:
    def test_filters_cron_lines(self, status_service: StatusService, tmp_path: Path) -> None:
        (tmp_path / "syslog").write_text(
            "Jan 1 00:00:01 host CRON[1]: (root) CMD (webstack backup)\n"
            "Jan 1 00:00:02 host kernel: something else\n"
            "Jan 1 00:00:03 host cron[2]: (root) CMD (certbot renew)\n"
        )
        lines = status_service.logs()
        assert len(lines) == 2
        assert all("cron" in line.lower() for line in lines)

    def test_prefers_first_candidate(self, status_service: StatusService, tmp_path: Path) -> None:
        (tmp_path / "cron.log").write_text("CRON dedicated\n")
        (tmp_path / "syslog").write_text("CRON syslog\n")
        assert status_service.logs() == ["CRON dedicated"]

    def test_last_n_lines(self, status_service: StatusService, tmp_path: Path) -> None:
        (tmp_path / "cron.log").write_text("".join(f"CRON line {i}\n" for i in range(20)))
        assert status_service.logs(lines=3) == ["CRON line 17", "CRON line 18", "CRON line 19"]

    def test_pattern(self, status_service: StatusService, tmp_path: Path) -> None:
        (tmp_path / "cron.log").write_text("CRON backup ok\nCRON ssl ok\nCRON backup failed\n")
        assert status_service.logs(pattern=r"backup \w+") == ["CRON backup ok", "CRON backup failed"]

    def test_window_drops_partial_line(self, status_service: StatusService, tmp_path: Path) -> None:
        body = "".join(f"CRON entry {i:05d}\n" for i in range(1000))
        (tmp_path / "cron.log").write_text(body)
        lines = status_service.logs(lines=10_000)
        assert lines[-1] == "CRON entry 00999"
        assert all(line.startswith("CRON entry ") and len(line) == 16 for line in lines)
        assert len(lines) < 1000

    def test_invalid_pattern(self, status_service: StatusService, tmp_path: Path) -> None:
        (tmp_path / "cron.log").write_text("CRON x\n")
        with pytest.raises(ValidationError):
            status_service.logs(pattern="(")

    def test_invalid_line_count(self, status_service: StatusService) -> None:
        with pytest.raises(ValidationError):
            status_service.logs(lines=0)

    def test_no_log_file(self, status_service: StatusService) -> None:
        with pytest.raises(CronIOError):
            status_service.logs()
