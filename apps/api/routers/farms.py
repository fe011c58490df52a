# apps/api/routers/farms.py
from fastapi import APIRouter, Depends

from apps.api.deps import get_farms_service, get_status_service
from apps.api.routers.jobs import job_view
from apps.api.services.farms_service import FarmsService
from apps.api.services.status_service import StatusService
from libs.contracts.farm import FarmAttributes, FarmCreate

router = APIRouter(prefix="/api/farms", tags=["farms"])


@router.post("", status_code=201)
def create_farm(body: FarmCreate, svc: FarmsService = Depends(get_farms_service)):
    return job_view(svc.create(body.to_payload(), job_id=body.id))


@router.get("")
def list_farms(svc: FarmsService = Depends(get_farms_service)):
    return [job_view(j) for j in svc.list()]


@router.get("/{job_id}")
def get_farm(job_id: str, svc: FarmsService = Depends(get_farms_service)):
    return job_view(svc.get(job_id))


@router.get("/{job_id}/matlab-results")
def get_farm_results(job_id: str, svc: StatusService = Depends(get_status_service)):
    """Dashboard view of the last result; null until the job is DONE"""
    view = svc.get_status(job_id)
    result = view.result.model_dump(mode="json", by_alias=True) if view.result is not None else None
    return {"matlabResults": result}


@router.put("/{job_id}")
def update_farm(job_id: str, body: FarmAttributes, svc: FarmsService = Depends(get_farms_service)):
    return job_view(svc.update_attributes(job_id, body.to_payload()))


@router.delete("/{job_id}")
def delete_farm(job_id: str, svc: FarmsService = Depends(get_farms_service)):
    svc.delete(job_id)
    return {"message": "Farm deleted successfully"}
