"""
Remote job client interface and its Google BigQuery implementation.

The orchestrator only talks to the warehouse through ``RemoteJobClient``.
``BigQueryJobClient`` implements it with the official
google-cloud-bigquery library; tests substitute an in-memory stub.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog
from google.api_core.client_info import ClientInfo
from google.cloud import bigquery
from google.oauth2 import service_account

from .config import BigQueryConnectorConfig
from .errors import JobFailedError, JobTimeoutError, sanitize_error_message
from .models import (
    CreateDisposition,
    Dataset,
    DatasetReference,
    Job,
    JobReference,
    JobState,
    JobStatus,
    LoadJobConfiguration,
    QueryJobConfiguration,
    TableReference,
    WriteDisposition,
)

logger = structlog.get_logger(__name__)

BIGQUERY_SCOPES = ["https://www.googleapis.com/auth/bigquery"]


class RemoteJobClient(ABC):
    """
    Narrow interface onto the warehouse's dataset and job APIs.

    Implementations raise ``google.api_core.exceptions.NotFound`` when a
    dataset is missing and ``google.api_core.exceptions.Conflict`` when a
    dataset being created already exists. Other remote errors propagate
    untouched.
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sleep = sleep
        self._clock = clock

    @abstractmethod
    def get_dataset(self, project_id: str, dataset_id: str) -> Dataset:
        """Fetch dataset metadata.

        Raises:
            google.api_core.exceptions.NotFound: If the dataset does not exist
        """

    @abstractmethod
    def create_dataset(self, project_id: str, dataset: Dataset) -> Dataset:
        """Create a dataset.

        Raises:
            google.api_core.exceptions.Conflict: If the dataset already exists
        """

    @abstractmethod
    def submit_job(self, project_id: str, job: Job) -> JobReference:
        """Insert a job and return its reference without waiting for it."""

    @abstractmethod
    def get_job_status(self, reference: JobReference) -> JobStatus:
        """Fetch the current status of a job."""

    def close(self) -> None:
        """Release connections held by the client. No-op by default."""

    def poll_job_until_done(
        self,
        reference: JobReference,
        poll_interval_seconds: float = 1.0,
        timeout_seconds: float | None = None,
    ) -> JobStatus:
        """
        Block until the job reaches a terminal state.

        Args:
            reference: Job to wait for
            poll_interval_seconds: Delay between status checks
            timeout_seconds: Give up after this long; None waits indefinitely

        Returns:
            JobStatus: Final status of a successful job

        Raises:
            JobFailedError: If the job finished with an error result
            JobTimeoutError: If the timeout elapsed first
        """
        started = self._clock()
        deadline = None if timeout_seconds is None else started + timeout_seconds
        polls = 0

        while True:
            status = self.get_job_status(reference)
            polls += 1
            if status.done:
                break

            now = self._clock()
            if deadline is not None and now >= deadline:
                logger.warning(
                    "job_wait_timed_out",
                    job_id=reference.job_id,
                    state=status.state.value,
                    timeout_seconds=timeout_seconds,
                )
                raise JobTimeoutError(
                    f"Timed out after {timeout_seconds}s waiting for job {reference}",
                    reference,
                    timeout_seconds,
                )

            logger.debug("job_pending", job_id=reference.job_id, state=status.state.value)
            delay = poll_interval_seconds
            if deadline is not None:
                delay = min(delay, max(0.0, deadline - now))
            self._sleep(delay)

        elapsed = self._clock() - started
        if status.failed:
            logger.error(
                "job_failed",
                job_id=reference.job_id,
                reason=(status.error_result or {}).get("reason"),
                error=sanitize_error_message(status.error_message or ""),
                polls=polls,
            )
            raise JobFailedError(
                f"Job {reference} failed: {status.error_message}",
                reference,
                error_result=status.error_result,
                errors=status.errors,
            )

        logger.info(
            "job_completed",
            job_id=reference.job_id,
            polls=polls,
            elapsed_seconds=round(elapsed, 3),
        )
        return status


def _disposition(value: WriteDisposition | CreateDisposition) -> str | None:
    if value.value == "USE_DEFAULT":
        return None
    return value.value


def _table(reference: TableReference) -> bigquery.TableReference:
    return bigquery.TableReference(
        bigquery.DatasetReference(reference.project_id, reference.dataset_id),
        reference.table_id,
    )


class BigQueryJobClient(RemoteJobClient):
    """RemoteJobClient backed by ``google.cloud.bigquery.Client``."""

    def __init__(
        self,
        client: bigquery.Client,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(sleep=sleep, clock=clock)
        self._client = client

    @classmethod
    def from_config(cls, config: BigQueryConnectorConfig) -> "BigQueryJobClient":
        """
        Build a client with credentials resolved from configuration.

        A service account key file is used when configured, otherwise the
        application default credentials.

        No default location is set on the client. Query jobs carry the
        staging location on their job reference, and load jobs run wherever
        the destination dataset lives.
        """
        credentials = None
        if config.credentials_path:
            credentials = service_account.Credentials.from_service_account_file(
                config.credentials_path, scopes=BIGQUERY_SCOPES
            )

        client = bigquery.Client(
            project=config.project_id,
            credentials=credentials,
            client_info=ClientInfo(user_agent=config.application_name),
        )
        logger.info(
            "bigquery_client_created",
            project_id=config.project_id,
            credentials="service_account" if credentials else "default",
        )
        return cls(client)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._client.close()
        logger.debug("bigquery_client_closed")

    def get_dataset(self, project_id: str, dataset_id: str) -> Dataset:
        remote = self._client.get_dataset(bigquery.DatasetReference(project_id, dataset_id))
        return self._to_dataset(remote)

    def create_dataset(self, project_id: str, dataset: Dataset) -> Dataset:
        remote = bigquery.Dataset(
            bigquery.DatasetReference(project_id, dataset.reference.dataset_id)
        )
        remote.location = dataset.location
        remote.description = dataset.description
        remote.default_table_expiration_ms = dataset.default_table_expiration_ms
        created = self._client.create_dataset(remote, exists_ok=False)
        return self._to_dataset(created)

    def submit_job(self, project_id: str, job: Job) -> JobReference:
        reference = job.reference
        configuration = job.configuration

        if isinstance(configuration, LoadJobConfiguration):
            remote_job = self._client.load_table_from_uri(
                list(configuration.source_uris),
                _table(configuration.destination_table),
                job_id=reference.job_id,
                project=project_id,
                location=reference.location,
                job_config=self._load_job_config(configuration),
            )
        else:
            remote_job = self._client.query(
                configuration.query,
                job_config=self._query_job_config(configuration),
                job_id=reference.job_id,
                project=project_id,
                location=reference.location,
            )

        logger.debug(
            "job_inserted",
            job_id=remote_job.job_id,
            kind=job.kind.value,
            location=remote_job.location,
        )
        return JobReference(
            project_id=project_id,
            job_id=remote_job.job_id,
            location=remote_job.location or reference.location,
        )

    def get_job_status(self, reference: JobReference) -> JobStatus:
        remote_job = self._client.get_job(
            reference.job_id, project=reference.project_id, location=reference.location
        )
        return JobStatus(
            state=JobState(remote_job.state),
            error_result=remote_job.error_result,
            errors=tuple(remote_job.errors or ()),
        )

    @staticmethod
    def _query_job_config(configuration: QueryJobConfiguration) -> bigquery.QueryJobConfig:
        job_config = bigquery.QueryJobConfig()
        job_config.use_legacy_sql = configuration.use_legacy_sql
        job_config.priority = configuration.priority.value
        job_config.dry_run = configuration.dry_run

        create_disposition = _disposition(configuration.create_disposition)
        if create_disposition:
            job_config.create_disposition = create_disposition
        write_disposition = _disposition(configuration.write_disposition)
        if write_disposition:
            job_config.write_disposition = write_disposition

        if configuration.destination_table is not None:
            job_config.destination = _table(configuration.destination_table)
            job_config.allow_large_results = configuration.allow_large_results

        return job_config

    @staticmethod
    def _load_job_config(configuration: LoadJobConfiguration) -> bigquery.LoadJobConfig:
        job_config = bigquery.LoadJobConfig()
        job_config.source_format = configuration.source_format.value

        create_disposition = _disposition(configuration.create_disposition)
        if create_disposition:
            job_config.create_disposition = create_disposition
        write_disposition = _disposition(configuration.write_disposition)
        if write_disposition:
            job_config.write_disposition = write_disposition

        return job_config

    @staticmethod
    def _to_dataset(remote: bigquery.Dataset) -> Dataset:
        return Dataset(
            reference=DatasetReference(
                project_id=remote.project, dataset_id=remote.dataset_id
            ),
            location=remote.location,
            description=remote.description,
            default_table_expiration_ms=remote.default_table_expiration_ms,
        )
