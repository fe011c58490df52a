# apps/api/deps.py
from __future__ import annotations
from functools import lru_cache
from time import perf_counter
import structlog
from fastapi import Request

from libs.adapters.job_store import JobStore
from libs.adapters.job_store_inmemory import InMemoryJobStore
from libs.adapters.job_store_sqlite import SqliteJobStore
from libs.storage.config import JobsConfig
from apps.api.services.dispatch_service import DispatchService
from apps.api.services.enqueue_service import EnqueueService
from apps.api.services.farms_service import FarmsService
from apps.api.services.ingestion_service import ResultIngestionService
from apps.api.services.lease_reaper import LeaseReaper
from apps.api.services.status_service import StatusService


@lru_cache
def get_config() -> JobsConfig:
    return JobsConfig()


def build_store(cfg: JobsConfig) -> JobStore:
    """
    Very small factory: choose store by backend.
    memory 仅用于本地调试/测试；多进程部署必须用 sqlite（或后续的共享存储）。
    """
    if cfg.STORE_BACKEND == "memory":
        return InMemoryJobStore()
    if cfg.STORE_BACKEND == "sqlite":
        return SqliteJobStore(cfg.SQLITE_PATH, busy_timeout=cfg.SQLITE_BUSY_TIMEOUT_SECONDS)
    raise ValueError(f"Unknown store backend: {cfg.STORE_BACKEND}")


def build_reaper(store: JobStore, cfg: JobsConfig) -> LeaseReaper:
    return LeaseReaper(store, max_attempts=cfg.MAX_ATTEMPTS, logger=structlog.get_logger())


# ---- request-scoped providers (state lives on app.state, wired in create_app) ----

def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_enqueue_service(request: Request) -> EnqueueService:
    return EnqueueService(get_store(request), logger=structlog.get_logger(), clock=perf_counter)


def get_dispatch_service(request: Request) -> DispatchService:
    cfg: JobsConfig = request.app.state.config
    return DispatchService(get_store(request), lease_seconds=cfg.LEASE_SECONDS, logger=structlog.get_logger())


def get_ingestion_service(request: Request) -> ResultIngestionService:
    return ResultIngestionService(get_store(request), logger=structlog.get_logger(), clock=perf_counter)


def get_status_service(request: Request) -> StatusService:
    return StatusService(get_store(request))


def get_farms_service(request: Request) -> FarmsService:
    return FarmsService(get_store(request), logger=structlog.get_logger())


def get_reaper(request: Request) -> LeaseReaper:
    return request.app.state.reaper
