"""
Staging dataset management.

Each warehouse location gets one staging dataset, named from the
configured prefix and the lower-cased location. It is created lazily with
a default table expiration, so every table written into it disappears on
its own. The dataset itself is never deleted here.
"""

import structlog
from google.api_core import exceptions as google_exceptions

from .config import STAGING_DATASET_DESCRIPTION, BigQueryConnectorConfig
from .models import Dataset, DatasetReference
from .remote import RemoteJobClient


class StagingDatasetManager:
    """Ensures the per-location staging dataset exists."""

    def __init__(self, remote: RemoteJobClient, config: BigQueryConnectorConfig):
        self.remote = remote
        self.config = config
        self.logger = structlog.get_logger(__name__)

    def dataset_id_for(self, location: str) -> str:
        return self.config.staging_dataset_prefix + location.lower()

    def ensure_staging_dataset(self, location: str) -> DatasetReference:
        """
        Return the staging dataset for a location, creating it if missing.

        Args:
            location: Warehouse location such as ``US`` or ``EU``

        Returns:
            DatasetReference: Reference to the staging dataset

        Raises:
            ValueError: If location is empty
            google.api_core.exceptions.GoogleAPIError: Any remote error other
                than the dataset being missing or created concurrently
        """
        if not location or not location.strip():
            raise ValueError("Staging dataset location cannot be empty")

        project_id = self.config.project_id
        dataset_id = self.dataset_id_for(location.strip())
        reference = DatasetReference(project_id=project_id, dataset_id=dataset_id)

        try:
            self.remote.get_dataset(project_id, dataset_id)
            self.logger.info(
                "staging_dataset_exists", project_id=project_id, dataset_id=dataset_id
            )
            return reference
        except google_exceptions.NotFound:
            pass

        self.logger.info(
            "creating_staging_dataset",
            project_id=project_id,
            dataset_id=dataset_id,
            location=location,
        )
        dataset = Dataset(
            reference=reference,
            location=location.strip(),
            description=STAGING_DATASET_DESCRIPTION,
            default_table_expiration_ms=self.config.staging_table_expiration_ms,
        )
        try:
            self.remote.create_dataset(project_id, dataset)
        except google_exceptions.Conflict:
            # another caller created it between our lookup and insert
            self.logger.info(
                "staging_dataset_created_concurrently",
                project_id=project_id,
                dataset_id=dataset_id,
            )
        else:
            self.logger.info(
                "staging_dataset_created",
                project_id=project_id,
                dataset_id=dataset_id,
                table_expiration_ms=self.config.staging_table_expiration_ms,
            )

        return reference
