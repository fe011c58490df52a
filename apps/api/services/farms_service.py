# apps/api/services/farms_service.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog

from libs.adapters.errors import require_id
from libs.adapters.job_store import JobStore
from libs.contracts.job_models import FarmJob


class FarmsService:
    """
    农场记录的薄 CRUD 封装（记录管理，不属于队列协议本身）
      - create -> status NEW
      - update 只改 attributes，不动 status/envelope，已入队的 snapshot 不受影响
    """

    def __init__(self, store: JobStore, logger=None):
        self.store = store
        self.log = logger or structlog.get_logger()

    def create(self, attributes: Dict[str, Any], *, job_id: Optional[str] = None) -> FarmJob:
        jid = require_id(job_id) if job_id is not None else None
        job = self.store.create(attributes, job_id=jid)
        self.log.info("farm.created", job_id=job.id)
        return job

    def list(self) -> List[FarmJob]:
        return self.store.list_jobs()

    def get(self, job_id: str) -> FarmJob:
        return self.store.get(require_id(job_id))

    def update_attributes(self, job_id: str, attributes: Dict[str, Any]) -> FarmJob:
        jid = require_id(job_id)
        job = self.store.atomic_update(
            jid, None, lambda j: j.model_copy(update={"attributes": {**j.attributes, **attributes}})
        )
        self.log.info("farm.updated", job_id=jid, fields=sorted(attributes))
        return job

    def delete(self, job_id: str) -> None:
        jid = require_id(job_id)
        self.store.delete(jid)
        self.log.info("farm.deleted", job_id=jid)
