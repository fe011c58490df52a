# apps/api/main.py
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from libs.adapters.errors import JobError
from libs.adapters.job_store import JobStore
from libs.observability.logging import bind_request, clear_request, setup_logging
from libs.storage.config import JobsConfig
from apps.api.deps import build_reaper, build_store, get_config
from apps.api.routers import farms, health, jobs


def create_app(store: Optional[JobStore] = None, config: Optional[JobsConfig] = None) -> FastAPI:
    cfg = config or get_config()
    setup_logging(cfg.LOG_LEVEL)
    log = structlog.get_logger()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if cfg.REAPER_INTERVAL_SECONDS > 0:
            app.state.reaper.start(cfg.REAPER_INTERVAL_SECONDS)
        yield
        app.state.reaper.stop()

    app = FastAPI(title="farm-jobs API", version="0.1.0", lifespan=lifespan)
    app.state.config = cfg
    app.state.store = store if store is not None else build_store(cfg)
    app.state.reaper = build_reaper(app.state.store, cfg)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins(),
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        rid = bind_request(request.headers.get("x-request-id"), method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request()
        response.headers["x-request-id"] = rid
        return response

    @app.exception_handler(JobError)
    async def job_error_handler(request: Request, exc: JobError):
        if exc.http_status >= 500:
            log.error("request.failed", error=exc.kind, detail=str(exc), path=request.url.path)
        return JSONResponse({"error": exc.kind, "detail": str(exc)}, status_code=exc.http_status)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # malformed / missing required fields are a plain client error
        return JSONResponse(
            {"error": "validation_error", "detail": jsonable_errors(exc)}, status_code=400
        )

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def root():
        return """
        <html><body>
          <h1>Farm Jobs API</h1>
          <p>See <a href="/docs">/docs</a> for Swagger UI.</p>
        </body></html>
        """

    app.include_router(health.router)
    app.include_router(farms.router)
    app.include_router(jobs.router)
    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    cfg = get_config()
    uvicorn.run(app, host=cfg.HOST, port=cfg.PORT, log_level=cfg.LOG_LEVEL.lower())
