"""webstack · Unified Error Hierarchy.

All custom exceptions inherit from WebstackError, which carries an
error_code and optional details dict for programmatic handling.

Usage::

    from webstack.core.errors import JobNotFoundError, CrontabError

    raise JobNotFoundError("job not found: 7", details={"job_id": 7})
    raise CrontabError("failed to install crontab", details={"cause": str(exc)})
"""

from __future__ import annotations


class WebstackError(Exception):
    """Base exception for all webstack errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "WEBSTACK_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ConfigError(WebstackError):
    """Configuration-related errors (loading, validation, missing keys)."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class ValidationError(WebstackError):
    """Rejected input, e.g. a schedule without exactly five fields.

    Raised before any state is touched.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class JobNotFoundError(WebstackError):
    """No metadata record exists for the requested job id."""

    def __init__(
        self,
        message: str,
        error_code: str = "JOB_NOT_FOUND",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class InvalidJobStateError(WebstackError):
    """Enabling an enabled job or disabling a disabled one."""

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_JOB_STATE",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class CronIOError(WebstackError):
    """I/O failures against the live schedule, metadata or log files."""

    def __init__(
        self,
        message: str,
        error_code: str = "CRON_IO_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class CrontabError(CronIOError):
    """Reading the crontab or installing it via the crontab command failed."""

    def __init__(
        self,
        message: str,
        error_code: str = "CRONTAB_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class StoreError(CronIOError):
    """A per-job metadata record could not be read or written."""

    def __init__(
        self,
        message: str,
        error_code: str = "STORE_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
