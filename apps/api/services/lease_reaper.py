# apps/api/services/lease_reaper.py
from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, List, Optional

import structlog
from pydantic import BaseModel, Field

from libs.adapters.errors import ConflictError, JobError, NotFoundError
from libs.adapters.job_store import JobStore
from libs.contracts.job_models import FarmJob, JobFailure, JobStatus, utcnow

LEASE_EXPIRED = "lease_expired"


class ReapReport(BaseModel):
    requeued: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)


class LeaseReaper:
    """
    Requeues IN_PROGRESS jobs whose claim lease expired.
      - goes through atomic_update only; the mutation re-checks token + expiry,
        so a result that commits first always wins over the sweep
      - requeued envelopes get a fresh seq (back of the line, no head-of-line blocking)
      - after max_attempts claims the job becomes FAILED(lease_expired)
    """

    def __init__(
        self,
        store: JobStore,
        *,
        max_attempts: int = 3,
        logger=None,
        now: Callable[[], datetime] = utcnow,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store
        self.max_attempts = max_attempts
        self.log = logger or structlog.get_logger()
        self.now = now
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep(self) -> ReapReport:
        now = self.now()
        report = ReapReport()
        for job in self.store.list_jobs(JobStatus.IN_PROGRESS):
            env = job.envelope
            if env is None or env.lease_expires_at is None or env.lease_expires_at > now:
                continue
            try:
                updated = self.store.atomic_update(job.id, JobStatus.IN_PROGRESS, self._expire(env.claim_token, now))
            except (ConflictError, NotFoundError) as e:
                # moved on since we listed it (result landed, re-enqueued, deleted)
                self.log.debug("reaper.skipped", job_id=job.id, reason=str(e))
                continue
            if updated.status == JobStatus.FAILED:
                report.failed.append(updated.id)
                self.log.warning("reaper.failed", job_id=updated.id, attempts=env.attempts)
            else:
                report.requeued.append(updated.id)
                self.log.info("reaper.requeued", job_id=updated.id, seq=updated.envelope.seq, attempts=env.attempts)
        return report

    def _expire(self, claim_token: Optional[str], now: datetime):
        def _mutation(job: FarmJob) -> FarmJob:
            env = job.envelope
            if env.claim_token != claim_token or env.lease_expires_at > now:
                raise ConflictError(f"job {job.id}: lease renewed or re-dispatched")
            if env.attempts >= self.max_attempts:
                return job.model_copy(update={
                    "status": JobStatus.FAILED,
                    "envelope": None,
                    "error": JobFailure(reason=LEASE_EXPIRED, failed_at=now),
                })
            requeued = env.model_copy(update={
                "seq": None,              # store stamps a fresh one
                "enqueued_at": now,
                "claimed": False,
                "claim_token": None,
                "claimed_at": None,
                "lease_expires_at": None,
            })
            return job.model_copy(update={"status": JobStatus.QUEUED, "envelope": requeued})
        return _mutation

    # ---- background loop ----

    def start(self, interval_seconds: float) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, args=(interval_seconds,), name="lease-reaper", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self, interval_seconds: float) -> None:
        self.log.info("reaper.started", interval_seconds=interval_seconds, max_attempts=self.max_attempts)
        while not self._stop.is_set():
            try:
                self.sweep()
            except JobError as e:
                # transient store trouble; next tick retries
                self.log.error("reaper.sweep_failed", error=str(e))
            self._stop.wait(interval_seconds)
        self.log.info("reaper.stopped")
