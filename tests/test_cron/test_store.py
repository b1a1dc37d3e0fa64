"""Tests für MetadataStore – ein JSON-Datensatz pro Job."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from webstack.core.errors import JobNotFoundError, StoreError
from webstack.cron.store import MetadataStore, record_name
from webstack.models import CronJob

if TYPE_CHECKING:
    from pathlib import Path


def _job(job_id: int, command: str = "echo hi", **kwargs) -> CronJob:
    return CronJob(id=job_id, schedule="0 2 * * *", command=command, **kwargs)


# ── ID-Vergabe ─────────────────────────────────────────────────────────────


class TestAllocateId:
    def test_empty_store(self, store: MetadataStore) -> None:
        assert store.allocate_id() == 1

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert MetadataStore(tmp_path / "nope").allocate_id() == 1

    def test_max_plus_one_with_gaps(self, store: MetadataStore) -> None:
        for job_id in (1, 3, 5):
            store.create(_job(job_id))
        assert store.allocate_id() == 6

    def test_ignores_foreign_files(self, store: MetadataStore) -> None:
        store.create(_job(2))
        (store.directory / "job-99.json.bak").write_text("{}")
        (store.directory / "notes.txt").write_text("x")
        assert store.allocate_id() == 3


# ── CRUD ───────────────────────────────────────────────────────────────────


class TestCrud:
    def test_create_and_read(self, store: MetadataStore) -> None:
        store.create(_job(1, description="Nightly"))
        job = store.read(1)
        assert job.command == "echo hi"
        assert job.description == "Nightly"
        assert job.enabled is True

    def test_record_file_name(self, store: MetadataStore) -> None:
        store.create(_job(4))
        assert (store.directory / record_name(4)).is_file()
        assert record_name(4) == "job-4.json"

    def test_create_duplicate_raises(self, store: MetadataStore) -> None:
        store.create(_job(1))
        with pytest.raises(StoreError):
            store.create(_job(1, command="other"))

    def test_read_missing(self, store: MetadataStore) -> None:
        with pytest.raises(JobNotFoundError) as exc_info:
            store.read(42)
        assert exc_info.value.details == {"job_id": 42}

    def test_read_corrupt(self, store: MetadataStore) -> None:
        store.directory.mkdir(parents=True)
        (store.directory / "job-1.json").write_text("{not json")
        with pytest.raises(StoreError):
            store.read(1)

    def test_update(self, store: MetadataStore) -> None:
        job = store.create(_job(1))
        store.update(job.model_copy(update={"enabled": False}))
        assert store.read(1).enabled is False

    def test_update_missing(self, store: MetadataStore) -> None:
        with pytest.raises(JobNotFoundError):
            store.update(_job(9))

    def test_delete(self, store: MetadataStore) -> None:
        store.create(_job(1))
        store.delete(1)
        assert not store.exists(1)

    def test_delete_twice(self, store: MetadataStore) -> None:
        store.create(_job(1))
        store.delete(1)
        with pytest.raises(JobNotFoundError):
            store.delete(1)

    def test_no_temp_files_left(self, store: MetadataStore) -> None:
        store.create(_job(1))
        store.update(_job(1, command="echo changed"))
        assert sorted(p.name for p in store.directory.iterdir()) == ["job-1.json"]

    def test_json_format(self, store: MetadataStore) -> None:
        store.create(_job(3, source="backup"))
        data = json.loads((store.directory / "job-3.json").read_text())
        assert data["id"] == 3
        assert data["schedule"] == "0 2 * * *"
        assert data["source"] == "backup"
        assert data["last_run"] is None

    def test_reads_go_zero_time(self, store: MetadataStore) -> None:
        """Ältere Datensätze kodieren 'nie gelaufen' als Jahr 1."""
        store.directory.mkdir(parents=True)
        (store.directory / "job-1.json").write_text(
            json.dumps({
                "id": 1,
                "schedule": "0 2 * * *",
                "command": "echo hi",
                "description": "",
                "enabled": True,
                "created": "2024-01-02T03:04:05Z",
                "last_run": "0001-01-01T00:00:00Z",
                "last_status": 0,
                "source": "manual",
            })
        )
        assert store.read(1).last_run is None


# ── Abfragen ───────────────────────────────────────────────────────────────


class TestList:
    def test_sorted_by_id(self, store: MetadataStore) -> None:
        for job_id in (10, 2, 7):
            store.create(_job(job_id))
        assert [j.id for j in store.list()] == [2, 7, 10]

    def test_app_only(self, store: MetadataStore) -> None:
        store.create(_job(1, command="webstack backup create"))
        store.create(_job(2, command="/usr/bin/certbot renew"))
        jobs = store.list(app_only=True, marker="webstack")
        assert [j.id for j in jobs] == [1]

    def test_skips_corrupt_records(self, store: MetadataStore) -> None:
        store.create(_job(1))
        (store.directory / "job-2.json").write_text("garbage")
        store.create(_job(3))
        assert [j.id for j in store.list()] == [1, 3]

    def test_find(self, store: MetadataStore) -> None:
        store.create(_job(1, command="echo a"))
        store.create(_job(2, command="echo b"))
        found = store.find("0  2 * * *", "echo b")
        assert found is not None
        assert found.id == 2
        assert store.find("0 3 * * *", "echo b") is None
