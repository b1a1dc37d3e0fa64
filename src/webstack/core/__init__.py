"""webstack core module."""

from webstack.core.errors import (  # noqa: F401
    ConfigError,
    CronIOError,
    CrontabError,
    InvalidJobStateError,
    JobNotFoundError,
    StoreError,
    ValidationError,
    WebstackError,
)
