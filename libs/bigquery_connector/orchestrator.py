"""
Job orchestration for staging queries and Avro loads.

Turns a SQL string into a query job writing into a freshly named staging
table, or a Cloud Storage path into a load job, submits it and blocks until
the job is done. No retries happen at this layer: a failed job surfaces as
``JobFailedError`` and any remote error propagates unchanged.
"""

import random
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from opentelemetry import trace

from .config import BigQueryConnectorConfig
from .models import (
    CreateDisposition,
    Job,
    JobReference,
    JobStatus,
    LoadJobConfiguration,
    QueryJobConfiguration,
    QueryPriority,
    SourceFormat,
    TableReference,
    WriteDisposition,
)
from .remote import RemoteJobClient
from .staging import StagingDatasetManager
from .telemetry import span_attributes, traced

logger = structlog.get_logger(__name__)

TABLE_ID_PREFIX = "spark_bigquery"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
MAX_TABLE_SUFFIX = 2**31 - 1
AVRO_FILE_PATTERN = "*.avro"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobOrchestrator:
    """Builds, submits and waits for query and load jobs."""

    def __init__(
        self,
        remote: RemoteJobClient,
        config: BigQueryConnectorConfig,
        staging: StagingDatasetManager | None = None,
        now: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ):
        self.remote = remote
        self.config = config
        self.staging = staging or StagingDatasetManager(remote, config)
        self._now = now
        self._rng = rng or random.Random()

    @property
    def project_id(self) -> str:
        return self.config.project_id

    def new_job_reference(self, location: str | None = None) -> JobReference:
        """Allocate a job id that is unique without coordination."""
        return JobReference(
            project_id=self.project_id,
            job_id=f"{self.project_id}-{uuid.uuid4()}",
            location=location,
        )

    def new_table_id(self) -> str:
        timestamp = self._now().astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
        suffix = self._rng.randrange(MAX_TABLE_SUFFIX)
        return f"{TABLE_ID_PREFIX}_{timestamp}_{suffix}"

    def temporary_table(self, location: str) -> TableReference:
        """Allocate a fresh table in the staging dataset for ``location``."""
        dataset = self.staging.ensure_staging_dataset(location)
        return dataset.table(self.new_table_id())

    def build_query_job(
        self,
        sql_query: str,
        destination: TableReference | None,
        use_standard_sql: bool = False,
        priority: QueryPriority | None = None,
        location: str | None = None,
    ) -> Job:
        configuration = QueryJobConfiguration(
            query=sql_query,
            use_legacy_sql=not use_standard_sql,
            priority=priority or self.config.query_priority,
            create_disposition=CreateDisposition.CREATE_IF_NEEDED,
            write_disposition=WriteDisposition.WRITE_EMPTY,
            destination_table=destination,
            allow_large_results=destination is not None,
        )
        return Job(reference=self.new_job_reference(location), configuration=configuration)

    def build_load_job(
        self,
        source_uri: str,
        destination: TableReference,
        write_disposition: WriteDisposition = WriteDisposition.USE_DEFAULT,
        create_disposition: CreateDisposition = CreateDisposition.USE_DEFAULT,
    ) -> Job:
        if not source_uri or not source_uri.strip():
            raise ValueError("source_uri cannot be empty")

        configuration = LoadJobConfiguration(
            destination_table=destination,
            source_uris=(f"{source_uri.rstrip('/')}/{AVRO_FILE_PATTERN}",),
            source_format=SourceFormat.AVRO,
            write_disposition=write_disposition,
            create_disposition=create_disposition,
        )
        return Job(reference=self.new_job_reference(), configuration=configuration)

    @traced("bigquery.run_query")
    def run_query(
        self,
        sql_query: str,
        use_standard_sql: bool = False,
        priority: QueryPriority | None = None,
    ) -> TableReference:
        """
        Run a query into a new staging table and wait for it to finish.

        Args:
            sql_query: SQL text to execute
            use_standard_sql: Standard SQL when True, legacy SQL otherwise
            priority: Job priority; the configured default when None

        Returns:
            TableReference: Destination table holding the complete result

        Raises:
            JobFailedError: If the query job fails
            JobTimeoutError: If the configured wait limit elapses
        """
        if not sql_query or not sql_query.strip():
            raise ValueError("Query cannot be empty or whitespace-only")

        location = self.config.staging_dataset_location
        destination = self.temporary_table(location)
        job = self.build_query_job(
            sql_query,
            destination,
            use_standard_sql=use_standard_sql,
            priority=priority,
            location=location,
        )

        logger.info(
            "executing_query",
            query=sql_query,
            use_standard_sql=use_standard_sql,
            destination_table=str(destination),
            job_id=job.reference.job_id,
        )
        self._submit_and_wait(job)
        return destination

    @traced("bigquery.load_data")
    def load_data(
        self,
        source_uri: str,
        destination: TableReference,
        write_disposition: WriteDisposition = WriteDisposition.USE_DEFAULT,
        create_disposition: CreateDisposition = CreateDisposition.USE_DEFAULT,
    ) -> None:
        """
        Load the Avro files under a Cloud Storage path into a table.

        Raises:
            JobFailedError: If the load job fails
            JobTimeoutError: If the configured wait limit elapses
        """
        job = self.build_load_job(
            source_uri,
            destination,
            write_disposition=write_disposition,
            create_disposition=create_disposition,
        )
        logger.info(
            "loading_data",
            source_uris=list(job.configuration.source_uris),
            destination_table=str(destination),
            write_disposition=write_disposition.value,
            create_disposition=create_disposition.value,
            job_id=job.reference.job_id,
        )
        self._submit_and_wait(job)

    def wait_for_job(self, reference: JobReference) -> JobStatus:
        return self.remote.poll_job_until_done(
            reference,
            poll_interval_seconds=self.config.job_poll_interval_seconds,
            timeout_seconds=self.config.job_timeout_seconds,
        )

    def _submit_and_wait(self, job: Job) -> JobStatus:
        reference = self.remote.submit_job(self.project_id, job)
        trace.get_current_span().set_attributes(
            span_attributes(
                {
                    "bigquery.job_id": reference.job_id,
                    "bigquery.job_kind": job.kind.value,
                    "bigquery.location": reference.location,
                }
            )
        )
        logger.info(
            "job_submitted",
            job_id=reference.job_id,
            kind=job.kind.value,
            project_id=self.project_id,
        )
        return self.wait_for_job(reference)
