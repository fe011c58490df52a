# test/conftest.py
import os

# keep importing apps.api.main from touching a sqlite file in the cwd
os.environ.setdefault("FARMJOBS_STORE_BACKEND", "memory")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from libs.adapters.job_store_inmemory import InMemoryJobStore
from libs.adapters.job_store_sqlite import SqliteJobStore
from libs.contracts.job_models import FarmJob, JobStatus
from libs.storage.config import JobsConfig


class FakeClock:
    """Settable UTC clock for lease tests."""

    def __init__(self, start: datetime | None = None):
        self.t = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t = self.t + timedelta(seconds=seconds)


def assert_invariants(job: FarmJob) -> None:
    live = job.status in (JobStatus.QUEUED, JobStatus.IN_PROGRESS)
    assert (job.envelope is not None) == live
    assert (job.result is not None) == (job.status == JobStatus.DONE)
    assert (job.error is not None) == (job.status == JobStatus.FAILED)
    if job.envelope is not None:
        assert job.envelope.claimed == (job.status == JobStatus.IN_PROGRESS)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path, clock):
    if request.param == "memory":
        yield InMemoryJobStore(clock=clock)
    else:
        s = SqliteJobStore(tmp_path / "jobs.db", clock=clock)
        yield s
        s.close()


@pytest.fixture()
def client():
    from apps.api.main import create_app

    app = create_app(store=InMemoryJobStore(), config=JobsConfig(STORE_BACKEND="memory"))
    with TestClient(app) as c:
        yield c
