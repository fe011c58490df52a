# apps/api/routers/health.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from apps.api.deps import get_store
from libs.adapters.job_store import JobStore

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/readyz")
def readyz(store: JobStore = Depends(get_store)):
    """聚合健康：{store: bool, ok: bool}"""
    ok = bool(store.ping())
    body = {"store": ok, "engine": store.engine, "ok": ok}
    return body if ok else JSONResponse(body, status_code=503)
