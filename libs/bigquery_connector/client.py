"""
Client facade and process-wide accessor.

``BigQueryClient`` wires the remote job client, staging dataset manager,
job orchestrator and query cache together. Construct one explicitly with a
configuration, or use ``get_client`` to share a single lazily created
instance across unrelated call sites.
"""

import threading
from typing import Any

import structlog

from .cache import CacheConfig, StagingTableCache
from .config import BigQueryConnectorConfig, load_config
from .models import (
    CacheKey,
    CreateDisposition,
    SqlDialect,
    TableReference,
    WriteDisposition,
)
from .orchestrator import JobOrchestrator
from .remote import BigQueryJobClient, RemoteJobClient
from .staging import StagingDatasetManager

logger = structlog.get_logger(__name__)


class BigQueryClient:
    """Runs staging queries through the cache and submits load jobs."""

    def __init__(
        self,
        config: BigQueryConnectorConfig,
        remote: RemoteJobClient | None = None,
    ):
        self.config = config
        self.remote = remote or BigQueryJobClient.from_config(config)
        self.staging = StagingDatasetManager(self.remote, config)
        self.orchestrator = JobOrchestrator(self.remote, config, staging=self.staging)
        self.cache = StagingTableCache(
            self._run_cached_query,
            CacheConfig(ttl_seconds=config.cache_ttl_seconds),
        )

    def _run_cached_query(self, key: CacheKey) -> TableReference:
        return self.orchestrator.run_query(key.query, use_standard_sql=key.use_standard_sql)

    def query(self, sql: str, dialect: SqlDialect = SqlDialect.LEGACY) -> TableReference:
        """
        Materialize a query into a staging table, reusing a cached result.

        Legacy SQL is the default dialect.

        Returns:
            TableReference: Table fully populated with the query result
        """
        return self.cache.resolve(sql, use_standard_sql=dialect.use_standard_sql)

    resolve_query = query

    def load(
        self,
        source_uri: str,
        destination: TableReference,
        write_disposition: WriteDisposition = WriteDisposition.USE_DEFAULT,
        create_disposition: CreateDisposition = CreateDisposition.USE_DEFAULT,
    ) -> None:
        """Load the Avro files under ``source_uri`` into ``destination``."""
        self.orchestrator.load_data(
            source_uri,
            destination,
            write_disposition=write_disposition,
            create_disposition=create_disposition,
        )

    def get_stats(self) -> dict[str, Any]:
        return {"project_id": self.config.project_id, "cache": self.cache.get_stats()}

    def close(self) -> None:
        """Release the remote client's connections."""
        self.remote.close()


# Process-wide instance. The first configuration seen wins.
_client_instance: BigQueryClient | None = None
_client_lock = threading.Lock()


def get_client(
    config: BigQueryConnectorConfig | None = None,
    remote: RemoteJobClient | None = None,
) -> BigQueryClient:
    """
    Get the process-wide BigQueryClient, creating it on first use.

    Later calls return the same instance even when given a different
    configuration; that configuration is ignored with a warning.

    Args:
        config: Configuration used only if no instance exists yet; read
            from ``BQ_`` environment variables when omitted
        remote: Optional remote client used only on first creation

    Returns:
        BigQueryClient: The shared client
    """
    global _client_instance
    instance = _client_instance
    if instance is None:
        with _client_lock:
            if _client_instance is None:
                _client_instance = BigQueryClient(config or load_config(), remote=remote)
                logger.info(
                    "shared_client_created",
                    project_id=_client_instance.config.project_id,
                    location=_client_instance.config.staging_dataset_location,
                )
                return _client_instance
            instance = _client_instance

    if config is not None and config != instance.config:
        logger.warning(
            "client_config_ignored",
            active_project_id=instance.config.project_id,
            requested_project_id=config.project_id,
        )
    return instance


def reset_client() -> None:
    """Close and drop the shared client so the next get_client call creates a new one."""
    global _client_instance
    with _client_lock:
        instance = _client_instance
        _client_instance = None
    if instance is not None:
        instance.close()
        logger.info("shared_client_reset", project_id=instance.config.project_id)
