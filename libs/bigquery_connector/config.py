"""
Settings for the BigQuery staging connector.

Settings come from three places, in increasing precedence: field defaults,
``BQ_``-prefixed environment variables (or a ``.env`` file), and explicit
keyword arguments. ``from_properties`` additionally maps the Hadoop-style
keys used by Spark job configurations onto the same fields.
"""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import QueryPriority

logger = structlog.get_logger(__name__)

STAGING_DATASET_PREFIX_DEFAULT = "spark_bigquery_staging_"
STAGING_DATASET_LOCATION_DEFAULT = "US"
STAGING_DATASET_TABLE_EXPIRATION_MS = 86_400_000
STAGING_DATASET_DESCRIPTION = "Spark BigQuery staging dataset"

# Hadoop configuration keys understood by from_properties
PROJECT_ID_KEY = "mapred.bq.project.id"
STAGING_DATASET_PREFIX_KEY = "bq.staging_dataset.prefix"
STAGING_DATASET_LOCATION_KEY = "bq.staging_dataset.location"
STAGING_TABLE_EXPIRATION_KEY = "bq.staging_dataset.table_expiration_ms"
CREDENTIALS_PATH_KEY = "fs.gs.auth.service.account.json.keyfile"
QUERY_PRIORITY_KEY = "bq.query.priority"
JOB_POLL_INTERVAL_KEY = "bq.job.poll_interval_seconds"
JOB_TIMEOUT_KEY = "bq.job.timeout_seconds"

PROPERTY_FIELD_MAP: dict[str, str] = {
    PROJECT_ID_KEY: "project_id",
    STAGING_DATASET_PREFIX_KEY: "staging_dataset_prefix",
    STAGING_DATASET_LOCATION_KEY: "staging_dataset_location",
    STAGING_TABLE_EXPIRATION_KEY: "staging_table_expiration_ms",
    CREDENTIALS_PATH_KEY: "credentials_path",
    QUERY_PRIORITY_KEY: "query_priority",
    JOB_POLL_INTERVAL_KEY: "job_poll_interval_seconds",
    JOB_TIMEOUT_KEY: "job_timeout_seconds",
}


class BigQueryConnectorConfig(BaseSettings):
    """Type-safe configuration for the staging connector."""

    model_config = SettingsConfigDict(
        env_prefix="BQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        str_strip_whitespace=True,
        frozen=True,
    )

    project_id: str = Field(..., min_length=1, description="Google Cloud project ID")

    staging_dataset_prefix: str = Field(
        default=STAGING_DATASET_PREFIX_DEFAULT,
        min_length=1,
        description="Prefix of the per-location staging dataset name",
    )
    staging_dataset_location: str = Field(
        default=STAGING_DATASET_LOCATION_DEFAULT,
        min_length=1,
        description="Location of the staging dataset and its jobs",
    )
    staging_table_expiration_ms: int = Field(
        default=STAGING_DATASET_TABLE_EXPIRATION_MS,
        gt=0,
        description="Default table expiration of the staging dataset; also the cache TTL",
    )

    credentials_path: str | None = Field(
        default=None,
        description="Service account JSON key file; application default credentials if unset",
    )
    application_name: str = Field(
        default="spark-bigquery", min_length=1, description="Client info user agent"
    )

    query_priority: QueryPriority = Field(
        default=QueryPriority.BATCH, description="Priority of staging query jobs"
    )
    job_poll_interval_seconds: float = Field(
        default=1.0, gt=0, le=60, description="Delay between job status checks"
    )
    job_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Client-side wait limit per job; None waits indefinitely",
    )

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: str | None) -> str | None:
        """Validate credentials file path."""
        if v is not None and not v.endswith(".json"):
            raise ValueError("credentials_path must be a JSON file")
        return v

    @field_validator("query_priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @property
    def cache_ttl_seconds(self) -> float:
        """Query cache TTL, matched to the staging table expiration."""
        return self.staging_table_expiration_ms / 1000

    @classmethod
    def from_properties(
        cls, properties: Mapping[str, Any], **overrides: Any
    ) -> "BigQueryConnectorConfig":
        """
        Build a configuration from a Hadoop-style key/value mapping.

        Unknown keys are ignored and empty values count as unset.

        Args:
            properties: Mapping such as a Spark/Hadoop job configuration
            **overrides: Field values taking precedence over the mapping

        Returns:
            BigQueryConnectorConfig: Validated configuration

        Raises:
            ConfigurationError: If the resulting configuration is invalid
        """
        values: dict[str, Any] = {}
        for key, field_name in PROPERTY_FIELD_MAP.items():
            value = properties.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            values[field_name] = value

        values.update(overrides)
        return load_config(**values)


def load_config(**values: Any) -> BigQueryConnectorConfig:
    """
    Create a configuration, turning validation failures into ConfigurationError.

    Raises:
        ConfigurationError: If required settings are missing or invalid
    """
    try:
        return BigQueryConnectorConfig(**values)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        logger.error("config_validation_failed", fields=fields, error_count=e.error_count())
        raise ConfigurationError(
            f"Invalid BigQuery connector configuration: {', '.join(fields)}"
        ) from e
