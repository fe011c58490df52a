# apps/api/routers/jobs.py
from fastapi import APIRouter, Depends

from apps.api.deps import (
    get_dispatch_service,
    get_enqueue_service,
    get_ingestion_service,
    get_reaper,
    get_status_service,
)
from apps.api.services.dispatch_service import DispatchService
from apps.api.services.enqueue_service import EnqueueService
from apps.api.services.ingestion_service import ResultIngestionService
from apps.api.services.lease_reaper import LeaseReaper
from apps.api.services.status_service import StatusService
from libs.contracts.farm import ComputeResult
from libs.contracts.job_models import (
    EnqueueRequest,
    FailureReport,
    FarmJob,
    MarkPendingRequest,
    PendingRequest,
    StatusView,
)

router = APIRouter(prefix="/api", tags=["jobs"])


def job_view(job: FarmJob) -> dict:
    return job.model_dump(mode="json", by_alias=True)


def status_view(view: StatusView) -> dict:
    # 只省略顶层空的 result/error；result 内部 worker 显式给出的 null 原样保留
    data = view.model_dump(mode="json", by_alias=True)
    return {k: v for k, v in data.items() if v is not None or k == "status"}


@router.post("/jobs/enqueue")
def enqueue(body: EnqueueRequest, svc: EnqueueService = Depends(get_enqueue_service)):
    """Snapshot a farm record (or an explicit payload) and queue it for the worker"""
    return job_view(svc.enqueue(body.id, body.payload))


@router.post("/jobs/mark-pending")
def mark_pending(body: MarkPendingRequest, svc: EnqueueService = Depends(get_enqueue_service)):
    return job_view(svc.mark_pending(body.id))


@router.post("/pending")
def pending(body: PendingRequest, svc: EnqueueService = Depends(get_enqueue_service)):
    """Dashboard "Send to MATLAB" button; body is {farmId}"""
    return job_view(svc.mark_pending(body.job_id()))


@router.post("/jobs/dispatch")
def dispatch(svc: DispatchService = Depends(get_dispatch_service)):
    """Worker poll: claims the oldest queued job, or {available: false}"""
    return svc.dispatch().model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/jobs/results")
@router.post("/matlab-results")
def ingest_results(body: ComputeResult, svc: ResultIngestionService = Depends(get_ingestion_service)):
    """Worker callback; `farmId` is accepted as an alias of `id`"""
    ack = svc.ingest(body.job_id(), body.fields(), claim_token=body.claim_token)
    return ack.model_dump(mode="json")


@router.post("/jobs/failures")
def report_failure(body: FailureReport, svc: ResultIngestionService = Depends(get_ingestion_service)):
    ack = svc.report_failure(body.id, body.reason, claim_token=body.claim_token)
    return ack.model_dump(mode="json")


@router.get("/jobs/{job_id}/status")
def get_status(job_id: str, svc: StatusService = Depends(get_status_service)):
    return status_view(svc.get_status(job_id))


@router.post("/jobs/reap")
def reap(reaper: LeaseReaper = Depends(get_reaper)):
    """Run one lease sweep now (the background sweep does the same on a timer)"""
    return reaper.sweep().model_dump()
