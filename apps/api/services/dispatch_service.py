# apps/api/services/dispatch_service.py
from __future__ import annotations

from time import perf_counter

import structlog

from libs.adapters.job_store import JobStore
from libs.contracts.job_models import DispatchResult


class DispatchService:
    """Serves worker polls: one atomic claim of the oldest queued envelope per call."""

    def __init__(self, store: JobStore, *, lease_seconds: float = 300.0, logger=None, clock=perf_counter):
        if lease_seconds <= 0:
            raise ValueError("lease_seconds must be > 0")
        self.store = store
        self.lease_seconds = lease_seconds
        self.log = logger or structlog.get_logger()
        self.clock = clock

    def dispatch(self) -> DispatchResult:
        t0 = self.clock()
        job = self.store.claim_oldest_queued(self.lease_seconds)
        if job is None:
            # empty queue is a normal answer, the worker just polls again later
            self.log.debug("dispatch.empty")
            return DispatchResult(available=False)

        env = job.envelope
        self.log.info(
            "dispatch.claimed",
            job_id=job.id,
            seq=env.seq,
            attempts=env.attempts,
            lease_expires_at=env.lease_expires_at.isoformat(),
            duration_ms=int((self.clock() - t0) * 1000),
        )
        # only what the worker needs: never the full record
        return DispatchResult(
            available=True,
            id=job.id,
            snapshot=env.snapshot,
            claim_token=env.claim_token,
            lease_expires_at=env.lease_expires_at,
        )
