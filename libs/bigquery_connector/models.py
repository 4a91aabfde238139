"""
Domain types shared by the BigQuery staging connector.

References, job specifications and the enums that drive job
configuration. Every value type is an immutable pydantic model so it can
be hashed, compared structurally and handed to other threads freely.
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_TABLE_SPEC_PATTERN = re.compile(
    r"^(?P<project>(?:[^:.]+(?:\.[^:.]+)+:)?[^:.]+)"
    r"[:.](?P<dataset>[^:.]+)\.(?P<table>[^:.]+)$"
)


class SqlDialect(str, Enum):
    """SQL variants accepted by BigQuery."""

    STANDARD = "standard"
    LEGACY = "legacy"

    @property
    def use_standard_sql(self) -> bool:
        return self is SqlDialect.STANDARD


class QueryPriority(str, Enum):
    """Scheduling priority for query jobs."""

    INTERACTIVE = "INTERACTIVE"
    BATCH = "BATCH"


class WriteDisposition(str, Enum):
    """Policy for writing into a destination table that may hold data."""

    USE_DEFAULT = "USE_DEFAULT"  # omit the field, BigQuery decides
    WRITE_TRUNCATE = "WRITE_TRUNCATE"
    WRITE_APPEND = "WRITE_APPEND"
    WRITE_EMPTY = "WRITE_EMPTY"


class CreateDisposition(str, Enum):
    """Policy for creating a destination table that does not exist."""

    USE_DEFAULT = "USE_DEFAULT"  # omit the field, BigQuery decides
    CREATE_IF_NEEDED = "CREATE_IF_NEEDED"
    CREATE_NEVER = "CREATE_NEVER"


class SourceFormat(str, Enum):
    """File formats accepted by load jobs."""

    AVRO = "AVRO"


class JobKind(str, Enum):
    """Kinds of jobs submitted by the orchestrator."""

    QUERY = "query"
    LOAD = "load"


class JobState(str, Enum):
    """BigQuery job states. DONE is the only terminal state."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class DatasetReference(_Frozen):
    """Identifies a dataset inside a project."""

    project_id: str = Field(..., min_length=1)
    dataset_id: str = Field(..., min_length=1)

    def table(self, table_id: str) -> "TableReference":
        """Return a reference to a table inside this dataset."""
        return TableReference(
            project_id=self.project_id,
            dataset_id=self.dataset_id,
            table_id=table_id,
        )

    def __str__(self) -> str:
        return f"{self.project_id}:{self.dataset_id}"


class TableReference(_Frozen):
    """Identifies a warehouse table."""

    project_id: str = Field(..., min_length=1)
    dataset_id: str = Field(..., min_length=1)
    table_id: str = Field(..., min_length=1)

    @classmethod
    def parse(cls, spec: str) -> "TableReference":
        """
        Parse ``project:dataset.table`` or ``project.dataset.table``.

        Domain-scoped projects such as ``example.com:analytics`` are
        accepted in either form.

        Raises:
            ValueError: If the text is not a fully qualified table name
        """
        match = _TABLE_SPEC_PATTERN.match(spec.strip().strip("`"))
        if not match:
            raise ValueError(
                f"Invalid table reference: {spec!r}. "
                "Expected project:dataset.table or project.dataset.table"
            )
        return cls(
            project_id=match.group("project"),
            dataset_id=match.group("dataset"),
            table_id=match.group("table"),
        )

    @property
    def dataset(self) -> DatasetReference:
        return DatasetReference(project_id=self.project_id, dataset_id=self.dataset_id)

    def to_standard_sql(self) -> str:
        """Render the table name for use inside standard SQL text."""
        return f"`{self.project_id}.{self.dataset_id}.{self.table_id}`"

    def __str__(self) -> str:
        return f"{self.project_id}:{self.dataset_id}.{self.table_id}"


class JobReference(_Frozen):
    """Identifies a submitted job."""

    project_id: str = Field(..., min_length=1)
    job_id: str = Field(..., min_length=1)
    location: str | None = None

    def __str__(self) -> str:
        return f"{self.project_id}:{self.job_id}"


class Dataset(_Frozen):
    """Dataset metadata exchanged with the remote service."""

    reference: DatasetReference
    location: str | None = None
    description: str | None = None
    default_table_expiration_ms: int | None = Field(default=None, gt=0)


class CacheKey(_Frozen):
    """Identity of a cached query: text plus dialect."""

    query: str
    use_standard_sql: bool = False


class QueryJobConfiguration(_Frozen):
    """Specification of a query job."""

    query: str = Field(..., min_length=1)
    use_legacy_sql: bool = True
    priority: QueryPriority = QueryPriority.BATCH
    create_disposition: CreateDisposition = CreateDisposition.CREATE_IF_NEEDED
    write_disposition: WriteDisposition = WriteDisposition.WRITE_EMPTY
    destination_table: TableReference | None = None
    allow_large_results: bool = False
    dry_run: bool = False


class LoadJobConfiguration(_Frozen):
    """Specification of a load job."""

    destination_table: TableReference
    source_uris: tuple[str, ...] = Field(..., min_length=1)
    source_format: SourceFormat = SourceFormat.AVRO
    write_disposition: WriteDisposition = WriteDisposition.USE_DEFAULT
    create_disposition: CreateDisposition = CreateDisposition.USE_DEFAULT


class Job(_Frozen):
    """A unit of remote work: its reference plus its configuration."""

    reference: JobReference
    configuration: QueryJobConfiguration | LoadJobConfiguration

    @property
    def kind(self) -> JobKind:
        if isinstance(self.configuration, LoadJobConfiguration):
            return JobKind.LOAD
        return JobKind.QUERY


class JobStatus(_Frozen):
    """Status of a job as last reported by the remote service."""

    state: JobState
    error_result: dict[str, Any] | None = None
    errors: tuple[dict[str, Any], ...] = ()

    @property
    def done(self) -> bool:
        return self.state is JobState.DONE

    @property
    def failed(self) -> bool:
        return self.done and self.error_result is not None

    @property
    def error_message(self) -> str | None:
        if not self.error_result:
            return None
        return self.error_result.get("message") or str(self.error_result)
