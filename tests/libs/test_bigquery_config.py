"""Tests for connector configuration and domain types."""

import pytest
from pydantic import ValidationError

from libs.bigquery_connector.config import (
    CREDENTIALS_PATH_KEY,
    PROJECT_ID_KEY,
    STAGING_DATASET_LOCATION_KEY,
    STAGING_DATASET_PREFIX_KEY,
    BigQueryConnectorConfig,
    load_config,
)
from libs.bigquery_connector.errors import ConfigurationError, sanitize_error_message
from libs.bigquery_connector.models import (
    CacheKey,
    DatasetReference,
    JobState,
    JobStatus,
    QueryPriority,
    SqlDialect,
    TableReference,
)


class TestBigQueryConnectorConfig:
    """Test configuration defaults, validation and property mapping."""

    def test_defaults(self):
        config = BigQueryConnectorConfig(project_id="p")

        assert config.staging_dataset_prefix == "spark_bigquery_staging_"
        assert config.staging_dataset_location == "US"
        assert config.staging_table_expiration_ms == 86_400_000
        assert config.cache_ttl_seconds == 86_400
        assert config.query_priority is QueryPriority.BATCH
        assert config.job_timeout_seconds is None
        assert config.credentials_path is None

    def test_from_properties(self):
        """Test Hadoop-style keys map onto configuration fields."""
        config = BigQueryConnectorConfig.from_properties(
            {
                PROJECT_ID_KEY: "my-project",
                STAGING_DATASET_PREFIX_KEY: "staging_",
                STAGING_DATASET_LOCATION_KEY: "EU",
                "bq.job.timeout_seconds": "120",
                "unrelated.key": "ignored",
            }
        )

        assert config.project_id == "my-project"
        assert config.staging_dataset_prefix == "staging_"
        assert config.staging_dataset_location == "EU"
        assert config.job_timeout_seconds == 120

    def test_from_properties_empty_values_use_defaults(self):
        """Test empty strings in the mapping count as unset."""
        config = BigQueryConnectorConfig.from_properties(
            {
                PROJECT_ID_KEY: "p",
                STAGING_DATASET_LOCATION_KEY: "",
                CREDENTIALS_PATH_KEY: "  ",
            }
        )

        assert config.staging_dataset_location == "US"
        assert config.credentials_path is None

    def test_from_properties_overrides(self):
        config = BigQueryConnectorConfig.from_properties(
            {PROJECT_ID_KEY: "p"}, query_priority=QueryPriority.INTERACTIVE
        )

        assert config.query_priority is QueryPriority.INTERACTIVE

    def test_missing_project_id(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError, match="project_id"):
            BigQueryConnectorConfig.from_properties({})

    def test_credentials_path_must_be_json(self):
        with pytest.raises(ConfigurationError, match="credentials_path"):
            load_config(project_id="p", credentials_path="/keys/service.p12")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("staging_table_expiration_ms", 0),
            ("job_poll_interval_seconds", 0),
            ("job_timeout_seconds", -1),
            ("query_priority", "urgent"),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigurationError, match=field):
            load_config(project_id="p", **{field: value})

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("BQ_PROJECT_ID", "env-project")
        monkeypatch.setenv("BQ_QUERY_PRIORITY", "interactive")

        config = load_config()

        assert config.project_id == "env-project"
        assert config.query_priority is QueryPriority.INTERACTIVE

    def test_configuration_is_immutable(self):
        config = BigQueryConnectorConfig(project_id="p")

        with pytest.raises(ValidationError, match="frozen"):
            config.project_id = "other"

        assert config.project_id == "p"


class TestModels:
    """Test reference and job value types."""

    @pytest.mark.parametrize(
        "spec",
        ["proj:dataset.table", "proj.dataset.table", "`proj.dataset.table`"],
    )
    def test_parse_table_reference(self, spec):
        reference = TableReference.parse(spec)

        assert reference == TableReference(
            project_id="proj", dataset_id="dataset", table_id="table"
        )

    @pytest.mark.parametrize("spec", ["dataset.table", "a:b", "", "a:b.c.d"])
    def test_parse_invalid_table_reference(self, spec):
        with pytest.raises(ValueError, match="Invalid table reference"):
            TableReference.parse(spec)

    @pytest.mark.parametrize(
        "spec",
        [
            "example.com:analytics:events.daily",
            "example.com:analytics.events.daily",
            "`example.com:analytics.events.daily`",
        ],
    )
    def test_parse_domain_scoped_project(self, spec):
        reference = TableReference.parse(spec)

        assert reference.project_id == "example.com:analytics"
        assert reference.dataset_id == "events"
        assert reference.table_id == "daily"
        assert str(reference) == "example.com:analytics:events.daily"

    def test_table_reference_rendering(self):
        reference = TableReference.parse("p:d.t")

        assert str(reference) == "p:d.t"
        assert reference.to_standard_sql() == "`p.d.t`"
        assert reference.dataset == DatasetReference(project_id="p", dataset_id="d")

    def test_dataset_table(self):
        dataset = DatasetReference(project_id="p", dataset_id="d")

        assert dataset.table("t") == TableReference.parse("p:d.t")
        assert str(dataset) == "p:d"

    def test_cache_key_structural_equality(self):
        assert CacheKey(query="SELECT 1") == CacheKey(query="SELECT 1", use_standard_sql=False)
        assert CacheKey(query="SELECT 1") != CacheKey(query="SELECT 1", use_standard_sql=True)
        assert len({CacheKey(query="SELECT 1"), CacheKey(query="SELECT 1")}) == 1

    def test_references_are_frozen(self):
        reference = TableReference.parse("p:d.t")

        with pytest.raises(Exception):
            reference.table_id = "other"

    def test_sql_dialect(self):
        assert SqlDialect.STANDARD.use_standard_sql is True
        assert SqlDialect.LEGACY.use_standard_sql is False

    def test_job_status(self):
        running = JobStatus(state=JobState.RUNNING)
        succeeded = JobStatus(state=JobState.DONE)
        failed = JobStatus(state=JobState.DONE, error_result={"message": "boom"})

        assert not running.done and not running.failed
        assert succeeded.done and not succeeded.failed
        assert failed.failed
        assert failed.error_message == "boom"


class TestSanitizeErrorMessage:
    """Test credential masking in error messages."""

    def test_masks_bearer_tokens(self):
        message = sanitize_error_message("401 Unauthorized: Bearer ya29.abcDEF-123")

        assert "ya29" not in message
        assert "Bearer ***" in message

    def test_masks_access_token_query_parameter(self):
        message = sanitize_error_message("GET /jobs?access_token=secret123&alt=json")

        assert "secret123" not in message

    def test_plain_message_unchanged(self):
        assert sanitize_error_message("Not found: Dataset p:d") == "Not found: Dataset p:d"
