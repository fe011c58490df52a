# libs/adapters/job_store.py
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Callable, Collection, Optional, Protocol, Union
from uuid import uuid4
from libs.contracts.job_models import FarmJob, JobStatus

# expected-status precondition: a status, a set of statuses, or None (any)
Expected = Union[JobStatus, Collection[JobStatus], None]
Mutation = Callable[[FarmJob], FarmJob]


def status_matches(current: JobStatus, expected: Expected) -> bool:
    if expected is None:
        return True
    if isinstance(expected, JobStatus):
        return current == expected
    return current in expected


class JobStore(Protocol):
    """
    The only shared state of the handoff protocol.
    Queue mutations go exclusively through atomic_update / claim_oldest_queued.
    """

    engine: str
    location: str

    def create(self, attributes: dict, *, job_id: Optional[str] = None) -> FarmJob:
        """New job in status NEW. Raise ConflictError if job_id exists."""
        ...

    def get(self, job_id: str) -> FarmJob:
        """Raise NotFoundError if unknown."""
        ...

    def list_jobs(self, status: Optional[JobStatus] = None) -> list[FarmJob]:
        ...

    def delete(self, job_id: str) -> None:
        """Record-management only; raise NotFoundError if unknown."""
        ...

    def atomic_update(self, job_id: str, expected: Expected, mutation: Mutation) -> FarmJob:
        """
        Compare-and-set: apply mutation to a private copy only if the current
        status matches `expected`, validate, and commit in one linearizable step.
        Raise NotFoundError / ConflictError; nothing is written on failure.
        A returned envelope with seq=None gets the next store sequence number.
        """
        ...

    def claim_oldest_queued(self, lease_seconds: float) -> Optional[FarmJob]:
        """Atomically take the QUEUED job with the smallest (seq, id); None if empty."""
        ...

    def ping(self) -> bool:
        return True


# ---- helpers shared by every backend (pure; run inside the backend's atomic section) ----

def apply_claim(job: FarmJob, *, now: datetime, lease_seconds: float) -> FarmJob:
    """QUEUED -> IN_PROGRESS with a fresh claim token and lease."""
    env = job.envelope.model_copy(update={
        "claimed": True,
        "claim_token": uuid4().hex,
        "claimed_at": now,
        "lease_expires_at": now + timedelta(seconds=lease_seconds),
        "attempts": job.envelope.attempts + 1,
    })
    return job.model_copy(update={"status": JobStatus.IN_PROGRESS, "envelope": env})


def finalize(candidate: FarmJob, *, next_seq: Callable[[], int], now: datetime) -> FarmJob:
    """Re-validate a mutated job (invariants) and stamp store-owned fields."""
    job = FarmJob.model_validate(candidate.model_dump())
    if job.envelope is not None and job.envelope.seq is None:
        job.envelope.seq = next_seq()
    job.updated_at = now
    return job


def describe_expected(expected: Expected) -> str:
    if expected is None:
        return "any"
    if isinstance(expected, JobStatus):
        return expected.value
    return "/".join(sorted(s.value for s in expected))
