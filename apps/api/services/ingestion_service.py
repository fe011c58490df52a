# apps/api/services/ingestion_service.py
from __future__ import annotations

from datetime import datetime
from time import perf_counter
from typing import Any, Callable, Dict, Mapping, Optional

import structlog

from libs.adapters.errors import ConflictError, require_id
from libs.adapters.job_store import JobStore
from libs.contracts.job_models import FarmJob, IngestAck, JobFailure, JobResult, JobStatus, utcnow

# store-owned timestamp keys a worker may not supply
_RESERVED_FIELDS = {"completedAt", "completed_at"}


class ResultIngestionService:
    """
    Worker callback side. Finalizes exactly the dispatch that is in flight:
      - only IN_PROGRESS accepts results (duplicates / stale deliveries -> ConflictError)
      - optional claim_token pins the result to one specific dispatch
      - {result, status=DONE, envelope cleared} commits as one atomic update, or not at all
    """

    def __init__(
        self,
        store: JobStore,
        logger=None,
        clock=perf_counter,
        now: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.log = logger or structlog.get_logger()
        self.clock = clock
        self.now = now

    def ingest(self, job_id: Optional[str], fields: Mapping[str, Any], *, claim_token: Optional[str] = None) -> IngestAck:
        jid = require_id(job_id)
        t0 = self.clock()
        completed_at = self.now()
        result_fields: Dict[str, Any] = {k: v for k, v in dict(fields).items() if k not in _RESERVED_FIELDS}

        def _mutation(job: FarmJob) -> FarmJob:
            self._check_token(job, claim_token)
            return job.model_copy(update={
                "status": JobStatus.DONE,
                "result": JobResult(completed_at=completed_at, **result_fields),
                "envelope": None,
            })

        try:
            job = self.store.atomic_update(jid, JobStatus.IN_PROGRESS, _mutation)
        except ConflictError as e:
            self.log.warning("ingest.conflict", job_id=jid, reason=str(e))
            raise

        self.log.info(
            "ingest.done",
            job_id=jid,
            fields=sorted(result_fields),
            duration_ms=int((self.clock() - t0) * 1000),
        )
        return IngestAck(id=job.id, status=job.status)

    def report_failure(self, job_id: Optional[str], reason: str, *, claim_token: Optional[str] = None) -> IngestAck:
        """Worker gave up on the current dispatch: IN_PROGRESS -> FAILED."""
        jid = require_id(job_id)
        failed_at = self.now()

        def _mutation(job: FarmJob) -> FarmJob:
            self._check_token(job, claim_token)
            return job.model_copy(update={
                "status": JobStatus.FAILED,
                "error": JobFailure(reason=reason, failed_at=failed_at),
                "envelope": None,
            })

        try:
            job = self.store.atomic_update(jid, JobStatus.IN_PROGRESS, _mutation)
        except ConflictError as e:
            self.log.warning("ingest.failure_conflict", job_id=jid, reason=str(e))
            raise
        self.log.warning("ingest.failed", job_id=jid, reason=reason)
        return IngestAck(id=job.id, status=job.status)

    @staticmethod
    def _check_token(job: FarmJob, claim_token: Optional[str]) -> None:
        if claim_token is not None and job.envelope.claim_token != claim_token:
            raise ConflictError(f"job {job.id}: claim token does not match the current dispatch")
