"""
Exceptions raised by the BigQuery staging connector.

Remote-service failures (not found, conflict, permission, quota, transport)
are raised by ``google.api_core.exceptions`` and reach callers unchanged.
The types here cover what the connector itself decides is an error.
"""

import re
from typing import Any

from .models import JobReference


def sanitize_error_message(error_message: str) -> str:
    """
    Sanitize error messages to remove sensitive information.

    Args:
        error_message: The raw error message

    Returns:
        str: Sanitized error message
    """
    sensitive_patterns = [
        (r'private_key[=:]\s*[\'"][^\'"]+[\'"]', "private_key=***"),
        (r'private_key_id[=:]\s*[\'"][^\'"]+[\'"]', "private_key_id=***"),
        (r'token[=:]\s*[\'"][^\'";]+[\'"]', "token=***"),
        (r"access_token=[^&\s]+", "access_token=***"),
        (r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", "Bearer ***"),
        (r'key[=:]\s*[\'"][^\'";]+[\'"]', "key=***"),
    ]

    sanitized_message = error_message
    for pattern, replacement in sensitive_patterns:
        sanitized_message = re.sub(
            pattern, replacement, sanitized_message, flags=re.IGNORECASE
        )

    return sanitized_message


class BigQueryConnectorError(Exception):
    """Base exception for the connector."""


class ConfigurationError(BigQueryConnectorError):
    """Raised when connector settings are missing or invalid."""


class JobError(BigQueryConnectorError):
    """Base class for errors tied to a submitted job."""

    def __init__(self, message: str, job_reference: JobReference):
        super().__init__(message)
        self.job_reference = job_reference


class JobFailedError(JobError):
    """The remote job finished in a failed state."""

    def __init__(
        self,
        message: str,
        job_reference: JobReference,
        error_result: dict[str, Any] | None = None,
        errors: tuple[dict[str, Any], ...] = (),
    ):
        super().__init__(message, job_reference)
        self.error_result = error_result
        self.errors = errors

    @property
    def reason(self) -> str | None:
        if not self.error_result:
            return None
        return self.error_result.get("reason")


class JobTimeoutError(JobError):
    """The client stopped waiting before the remote job finished.

    The job itself is not cancelled and may still complete server-side.
    """

    def __init__(
        self, message: str, job_reference: JobReference, timeout_seconds: float
    ):
        super().__init__(message, job_reference)
        self.timeout_seconds = timeout_seconds
