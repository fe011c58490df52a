# apps/api/services/enqueue_service.py
from __future__ import annotations

from copy import deepcopy
from datetime import datetime
from time import perf_counter
from typing import Any, Callable, Dict, Optional

import structlog

from libs.adapters.errors import require_id
from libs.adapters.job_store import JobStore
from libs.contracts.job_models import Envelope, FarmJob, JobStatus, utcnow


class EnqueueService:
    """
    Producer side of the handoff:
      - snapshot the payload into a fresh envelope (status -> QUEUED)
      - supersede whatever state the job was in (one live envelope per id)
      - the store stamps the FIFO sequence; wall clock is informational only
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

    def enqueue(self, job_id: str, payload: Optional[Dict[str, Any]] = None) -> FarmJob:
        jid = require_id(job_id)
        t0 = self.clock()
        enqueued_at = self.now()

        def _mutation(job: FarmJob) -> FarmJob:
            # payload 缺省时取当前 attributes；都要深拷贝，之后改 attributes 不影响 worker 看到的 snapshot
            snapshot = deepcopy(payload) if payload is not None else deepcopy(job.attributes)
            return self._queued(job, snapshot, enqueued_at)

        job = self.store.atomic_update(jid, None, _mutation)
        self.log.info(
            "enqueue.done",
            job_id=jid,
            seq=job.envelope.seq,
            explicit_payload=payload is not None,
            duration_ms=int((self.clock() - t0) * 1000),
        )
        return job

    def mark_pending(self, job_id: str) -> FarmJob:
        """
        Legacy "mark pending" alias: enqueue with the current attributes, but a job
        that is already QUEUED keeps its envelope (and its place in line).
        """
        jid = require_id(job_id)
        enqueued_at = self.now()

        def _mutation(job: FarmJob) -> FarmJob:
            if job.status == JobStatus.QUEUED:
                return job
            return self._queued(job, deepcopy(job.attributes), enqueued_at)

        job = self.store.atomic_update(jid, None, _mutation)
        self.log.info("enqueue.mark_pending", job_id=jid, seq=job.envelope.seq)
        return job

    @staticmethod
    def _queued(job: FarmJob, snapshot: Dict[str, Any], enqueued_at: datetime) -> FarmJob:
        return job.model_copy(update={
            "status": JobStatus.QUEUED,
            "envelope": Envelope(snapshot=snapshot, enqueued_at=enqueued_at),  # seq=None -> store assigns
            "result": None,
            "error": None,
        })
