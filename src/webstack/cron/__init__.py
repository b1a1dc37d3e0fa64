"""webstack cron module -- Crontab, Systemd-Timer und Job-Metadaten.

Einstieg für Aufrufer ist CronService; die übrigen Klassen sind die
Bausteine, aus denen CronService.from_config() ihn zusammensetzt.
"""

from webstack.cron.crontab import CrontabAdapter
from webstack.cron.executor import JobExecutor
from webstack.cron.reconcile import Reconciler, ReconcileReport
from webstack.cron.service import CronService
from webstack.cron.status import StatusService
from webstack.cron.store import MetadataStore
from webstack.cron.timers import TimerScanner

__all__ = [
    "CronService",
    "CrontabAdapter",
    "JobExecutor",
    "MetadataStore",
    "ReconcileReport",
    "Reconciler",
    "StatusService",
    "TimerScanner",
]
