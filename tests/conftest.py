"""Pytest configuration and shared fixtures."""

import os
import threading

import pytest
from google.api_core import exceptions as google_exceptions

from libs.bigquery_connector.client import reset_client
from libs.bigquery_connector.config import BigQueryConnectorConfig
from libs.bigquery_connector.models import (
    Dataset,
    DatasetReference,
    Job,
    JobReference,
    JobState,
    JobStatus,
)
from libs.bigquery_connector.remote import RemoteJobClient


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubRemoteJobClient(RemoteJobClient):
    """In-memory remote job client recording every call."""

    def __init__(self, missing_datasets: int = 0, clock: FakeClock | None = None):
        self.clock = clock or FakeClock()
        self.sleeps: list[float] = []
        super().__init__(sleep=self._sleep_stub, clock=self.clock)

        self._lock = threading.Lock()
        self.missing_datasets = missing_datasets
        self.datasets: dict[tuple[str, str], Dataset] = {}
        self.get_dataset_calls: list[tuple[str, str]] = []
        self.create_dataset_calls: list[Dataset] = []
        self.submitted_jobs: list[Job] = []
        self.status_checks: list[JobReference] = []

        # Per-job status sequences; the last status repeats
        self.status_script: list[JobStatus] = [JobStatus(state=JobState.DONE)]
        self._job_statuses: dict[str, list[JobStatus]] = {}

        self.get_dataset_error: Exception | None = None
        self.create_dataset_error: Exception | None = None
        self.submit_error: Exception | None = None
        self.submit_delay: threading.Event | None = None
        self.close_count = 0

    def _sleep_stub(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.clock.advance(seconds)

    def get_dataset(self, project_id: str, dataset_id: str) -> Dataset:
        with self._lock:
            self.get_dataset_calls.append((project_id, dataset_id))
            if self.get_dataset_error is not None:
                raise self.get_dataset_error
            if self.missing_datasets > 0:
                self.missing_datasets -= 1
                raise google_exceptions.NotFound(f"Dataset {project_id}:{dataset_id}")
            dataset = self.datasets.get((project_id, dataset_id))
            if dataset is None:
                raise google_exceptions.NotFound(f"Dataset {project_id}:{dataset_id}")
            return dataset

    def create_dataset(self, project_id: str, dataset: Dataset) -> Dataset:
        with self._lock:
            self.create_dataset_calls.append(dataset)
            if self.create_dataset_error is not None:
                raise self.create_dataset_error
            self.datasets[(project_id, dataset.reference.dataset_id)] = dataset
            return dataset

    def submit_job(self, project_id: str, job: Job) -> JobReference:
        if self.submit_delay is not None:
            self.submit_delay.wait(timeout=5)
        with self._lock:
            self.submitted_jobs.append(job)
            if self.submit_error is not None:
                raise self.submit_error
            self._job_statuses[job.reference.job_id] = list(self.status_script)
            return job.reference

    def get_job_status(self, reference: JobReference) -> JobStatus:
        with self._lock:
            self.status_checks.append(reference)
            statuses = self._job_statuses[reference.job_id]
            if len(statuses) > 1:
                return statuses.pop(0)
            return statuses[0]

    def close(self) -> None:
        self.close_count += 1

    def register_dataset(self, project_id: str, dataset_id: str) -> None:
        self.datasets[(project_id, dataset_id)] = Dataset(
            reference=DatasetReference(project_id=project_id, dataset_id=dataset_id)
        )


@pytest.fixture(autouse=True)
def clean_bq_env(monkeypatch):
    """Keep BQ_* variables from the host environment out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith("BQ_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_shared_client():
    """Make sure no test leaks the process-wide client into another."""
    reset_client()
    yield
    reset_client()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def connector_config():
    """Configuration matching a project 'p' with staging in the US."""
    return BigQueryConnectorConfig(project_id="p", staging_dataset_location="US")


@pytest.fixture
def stub_remote(fake_clock):
    """Remote client that reports the staging dataset missing once."""
    return StubRemoteJobClient(missing_datasets=1, clock=fake_clock)


@pytest.fixture
def make_stub_remote(fake_clock):
    """Factory for stub remote clients sharing the test clock."""

    def _make(missing_datasets: int = 0) -> StubRemoteJobClient:
        return StubRemoteJobClient(missing_datasets=missing_datasets, clock=fake_clock)

    return _make
