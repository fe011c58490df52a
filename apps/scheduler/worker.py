# Reference polling worker: python -m apps.scheduler.worker --base-url http://localhost:8888
# The real compute worker lives outside this repo; it only needs the same
# poll -> compute -> callback loop against the HTTP API.
from __future__ import annotations

import argparse
import threading
from typing import Any, Callable, Dict, Optional

import httpx
import structlog

from libs.observability.logging import setup_logging

ComputeFn = Callable[[Dict[str, Any]], Dict[str, Any]]


def estimate_spray(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    """Toy stand-in for the external spray model; lets the loop run end to end locally."""
    temp = float(snapshot.get("temp") or 25.0)
    density = float(snapshot.get("obstacle_density") or 0.0)
    efficiency = max(0.0, min(100.0, 90.0 - abs(temp - 22.0) * 1.5 - density * 10.0))
    return {
        "sprayEfficiency": round(efficiency, 2),
        "coverage": round(min(100.0, efficiency + 5.0), 2),
        "bestAlgorithm": "grid" if density < 0.5 else "adaptive",
    }


class PollingWorker:
    def __init__(
        self,
        base_url: str = "http://localhost:8888",
        compute: ComputeFn = estimate_spray,
        *,
        poll_interval: float = 5.0,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
        logger=None,
    ) -> None:
        self._client = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self._owns_client = http_client is None
        self.compute = compute
        self.poll_interval = poll_interval
        self.log = logger or structlog.get_logger()
        self._stop = threading.Event()

    def run_once(self) -> Optional[str]:
        """One poll. Returns the job id handled, or None when the queue was empty."""
        resp = self._client.post("/api/jobs/dispatch")
        resp.raise_for_status()
        work = resp.json()
        if not work.get("available"):
            return None

        job_id, token = work["id"], work.get("claimToken")
        try:
            fields = self.compute(work.get("snapshot") or {})
        except Exception as e:
            self.log.warning("worker.compute_failed", job_id=job_id, error=repr(e))
            self._post("/api/jobs/failures", {"id": job_id, "reason": repr(e), "claimToken": token})
            return job_id

        self._post("/api/jobs/results", {"id": job_id, "claimToken": token, **fields})
        self.log.info("worker.delivered", job_id=job_id)
        return job_id

    def _post(self, path: str, body: Dict[str, Any]) -> None:
        resp = self._client.post(path, json=body)
        if resp.status_code == 409:
            # re-enqueued or lease reaped while we computed; the newer dispatch owns the job
            self.log.warning("worker.stale_delivery", path=path, job_id=body.get("id"), detail=resp.json().get("detail"))
            return
        resp.raise_for_status()

    def run_forever(self) -> None:
        while not self._stop.is_set():
            try:
                handled = self.run_once()
            except httpx.HTTPError as e:
                self.log.error("worker.poll_failed", error=str(e))
                handled = None
            if handled is None:
                self._stop.wait(self.poll_interval)

    def stop(self) -> None:
        self._stop.set()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--base-url", default="http://localhost:8888")
    p.add_argument("--poll-interval", type=float, default=5.0)
    p.add_argument("--once", action="store_true")
    args = p.parse_args()
    setup_logging()
    worker = PollingWorker(args.base_url, poll_interval=args.poll_interval)
    try:
        if args.once:
            print(worker.run_once())
        else:
            worker.run_forever()
    except KeyboardInterrupt:
        worker.stop()
    finally:
        worker.close()
