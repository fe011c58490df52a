from __future__ import annotations
import threading
from datetime import datetime
from itertools import count
from typing import Callable, Dict, Optional
from libs.contracts.job_models import FarmJob, JobStatus, utcnow
from .errors import ConflictError, NotFoundError
from .job_store import Expected, Mutation, apply_claim, describe_expected, finalize, status_matches


class InMemoryJobStore:
    """
    Process-local store; one lock makes every primitive a single atomic step.
    Callers only ever see deep copies, never the stored objects.
    """
    engine = "memory"
    location = "memory://"

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._by_id: Dict[str, FarmJob] = {}
        self._lock = threading.Lock()
        self._seq = count(1)
        self.clock = clock

    # ---- reads ----
    def get(self, job_id: str) -> FarmJob:
        with self._lock:
            return self._require(job_id).model_copy(deep=True)

    def list_jobs(self, status: Optional[JobStatus] = None) -> list[FarmJob]:
        with self._lock:
            jobs = [j for j in self._by_id.values() if status is None or j.status == status]
            return [j.model_copy(deep=True) for j in sorted(jobs, key=lambda j: j.created_at)]

    # ---- record management ----
    def create(self, attributes: dict, *, job_id: Optional[str] = None) -> FarmJob:
        now = self.clock()
        fields = {"attributes": dict(attributes), "created_at": now, "updated_at": now}
        if job_id is not None:
            fields["id"] = job_id
        rec = FarmJob(**fields)
        with self._lock:
            if rec.id in self._by_id:
                raise ConflictError(f"job already exists: {rec.id}")
            self._by_id[rec.id] = rec
            return rec.model_copy(deep=True)

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._require(job_id)
            del self._by_id[job_id]

    # ---- atomic primitives ----
    def atomic_update(self, job_id: str, expected: Expected, mutation: Mutation) -> FarmJob:
        with self._lock:
            current = self._require(job_id)
            if not status_matches(current.status, expected):
                raise ConflictError(f"job {job_id} is {current.status}, expected {describe_expected(expected)}")
            updated = finalize(mutation(current.model_copy(deep=True)), next_seq=self._next_seq, now=self.clock())
            if updated.id != job_id:
                raise ValueError("mutation must not change the job id")
            self._by_id[job_id] = updated
            return updated.model_copy(deep=True)

    def claim_oldest_queued(self, lease_seconds: float) -> Optional[FarmJob]:
        with self._lock:
            queued = [j for j in self._by_id.values() if j.status == JobStatus.QUEUED]
            if not queued:
                return None
            oldest = min(queued, key=FarmJob.sort_key)
            now = self.clock()
            claimed = finalize(apply_claim(oldest.model_copy(deep=True), now=now, lease_seconds=lease_seconds),
                               next_seq=self._next_seq, now=now)
            self._by_id[claimed.id] = claimed
            return claimed.model_copy(deep=True)

    def ping(self) -> bool:
        return True

    # ---- internals ----
    def _require(self, job_id: str) -> FarmJob:
        rec = self._by_id.get(job_id)
        if rec is None:
            raise NotFoundError(job_id)
        return rec

    def _next_seq(self) -> int:
        return next(self._seq)

