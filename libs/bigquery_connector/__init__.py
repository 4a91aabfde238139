"""
BigQuery Staging Connector Library

Runs SQL against Google BigQuery into auto-expiring staging tables and
loads Avro data from Cloud Storage back into BigQuery.

Features:
- Per-location staging datasets created lazily with a table expiration
- Query jobs materialized into uniquely named destination tables
- Single-flight query result cache expiring with the staging tables
- Avro load jobs with optional write/create dispositions
- Process-wide shared client with first-configuration-wins semantics
"""

from .cache import CacheConfig, StagingTableCache
from .client import BigQueryClient, get_client, reset_client
from .config import BigQueryConnectorConfig, load_config
from .errors import (
    BigQueryConnectorError,
    ConfigurationError,
    JobFailedError,
    JobTimeoutError,
)
from .models import (
    CacheKey,
    CreateDisposition,
    DatasetReference,
    QueryPriority,
    SqlDialect,
    TableReference,
    WriteDisposition,
)
from .orchestrator import JobOrchestrator
from .remote import BigQueryJobClient, RemoteJobClient
from .staging import StagingDatasetManager

__all__ = [
    "BigQueryClient",
    "get_client",
    "reset_client",
    "BigQueryConnectorConfig",
    "load_config",
    "StagingTableCache",
    "CacheConfig",
    "JobOrchestrator",
    "StagingDatasetManager",
    "RemoteJobClient",
    "BigQueryJobClient",
    "CacheKey",
    "TableReference",
    "DatasetReference",
    "SqlDialect",
    "QueryPriority",
    "WriteDisposition",
    "CreateDisposition",
    "BigQueryConnectorError",
    "ConfigurationError",
    "JobFailedError",
    "JobTimeoutError",
]
