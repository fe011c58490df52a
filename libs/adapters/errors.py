# libs/adapters/errors.py
from __future__ import annotations


class JobError(Exception):
    """Base for every error the job handoff protocol raises."""
    kind = "job_error"
    http_status = 500


class ValidationError(JobError):
    """Missing/malformed required field (caller's fault, not retriable as-is)."""
    kind = "validation_error"
    http_status = 400


class NotFoundError(JobError):
    kind = "not_found"
    http_status = 404

    def __init__(self, job_id: str):
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id


class ConflictError(JobError):
    """Atomic precondition failed: state moved under the caller; re-read status."""
    kind = "conflict"
    http_status = 409


class StoreUnavailableError(JobError):
    """Persistence failure; transient, safe to retry with backoff."""
    kind = "store_unavailable"
    http_status = 503


def require_id(job_id) -> str:
    """Normalize a caller-supplied job id; blank/missing is a ValidationError."""
    jid = str(job_id).strip() if job_id is not None else ""
    if not jid:
        raise ValidationError("id is required")
    return jid
