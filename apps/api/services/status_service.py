# apps/api/services/status_service.py
from __future__ import annotations

from libs.adapters.errors import require_id
from libs.adapters.job_store import JobStore
from libs.contracts.job_models import StatusView


class StatusService:
    """Read-only projection for the UI; reflects the last committed state."""

    def __init__(self, store: JobStore):
        self.store = store

    def get_status(self, job_id: str) -> StatusView:
        job = self.store.get(require_id(job_id))
        return StatusView(status=job.status, result=job.result, error=job.error)
