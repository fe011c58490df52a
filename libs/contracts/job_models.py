# libs/contracts/job_models.py
# FarmJob · envelope / result / wire models for the job handoff protocol
from __future__ import annotations
from enum import StrEnum
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return uuid4().hex


# ---- status machine ----
class JobStatus(StrEnum): NEW="NEW"; QUEUED="QUEUED"; IN_PROGRESS="IN_PROGRESS"; DONE="DONE"; FAILED="FAILED"

LIVE_ENVELOPE_STATES = frozenset({JobStatus.QUEUED, JobStatus.IN_PROGRESS})


class Envelope(BaseModel):
    """Snapshot handed to the worker plus queue bookkeeping."""
    model_config = ConfigDict(extra="forbid")
    snapshot: Dict[str, Any]                                     # payload copy at enqueue time
    enqueued_at: datetime = Field(default_factory=utcnow)        # informational only
    seq: Optional[int] = None                                    # store-assigned FIFO key
    claimed: bool = False
    claim_token: Optional[str] = None
    claimed_at: Optional[datetime] = None
    lease_expires_at: Optional[datetime] = None
    attempts: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_claim(self):
        if self.claimed and not self.claim_token:
            raise ValueError("claimed envelope must carry a claim_token")
        if not self.claimed and (self.claim_token or self.claimed_at or self.lease_expires_at):
            raise ValueError("unclaimed envelope cannot carry claim fields")
        return self


class JobResult(BaseModel):
    """Worker output. Known fields of the farm compute callback; any extra field is kept."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    completed_at: datetime = Field(default_factory=utcnow, alias="completedAt")


class JobFailure(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    reason: str = Field(min_length=1)
    failed_at: datetime = Field(default_factory=utcnow, alias="failedAt")


class FarmJob(BaseModel):
    """One farm record's processing lifecycle. Every write goes through validation."""
    model_config = ConfigDict(extra="forbid")
    id: str = Field(default_factory=new_job_id, min_length=1)
    attributes: Dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.NEW
    envelope: Optional[Envelope] = None
    result: Optional[JobResult] = None
    error: Optional[JobFailure] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("id", mode="before")
    @classmethod
    def _norm_id(cls, v):
        return str(v).strip() if v is not None else v

    @model_validator(mode="after")
    def _check_invariants(self):
        live = self.status in LIVE_ENVELOPE_STATES
        if live != (self.envelope is not None):
            raise ValueError(f"envelope must exist iff status in QUEUED/IN_PROGRESS (status={self.status})")
        if self.envelope is not None and self.envelope.claimed != (self.status == JobStatus.IN_PROGRESS):
            raise ValueError("envelope.claimed must be true iff status is IN_PROGRESS")
        if (self.status == JobStatus.DONE) != (self.result is not None):
            raise ValueError(f"result must exist iff status is DONE (status={self.status})")
        if (self.status == JobStatus.FAILED) != (self.error is not None):
            raise ValueError(f"error must exist iff status is FAILED (status={self.status})")
        return self

    def sort_key(self) -> tuple[int, str]:
        # only meaningful for queued jobs
        return (self.envelope.seq if self.envelope and self.envelope.seq is not None else -1, self.id)


# ---- wire models ----
class EnqueueRequest(BaseModel):
    id: str = Field(min_length=1)
    payload: Optional[Dict[str, Any]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _strip(cls, v):
        return str(v).strip() if v is not None else v


class MarkPendingRequest(BaseModel):
    id: str = Field(min_length=1)


class PendingRequest(BaseModel):
    # 前端 "Send to MATLAB" 按钮的报文：{farmId}
    model_config = ConfigDict(populate_by_name=True)
    id: Optional[str] = None
    farm_id: Optional[str] = Field(None, alias="farmId")

    def job_id(self) -> str:
        return self.id or self.farm_id or ""


class FailureReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    claim_token: Optional[str] = Field(None, alias="claimToken")


class DispatchResult(BaseModel):
    """Poll reply. Never carries the full record, only what the worker needs."""
    model_config = ConfigDict(populate_by_name=True)
    available: bool
    id: Optional[str] = None
    snapshot: Optional[Dict[str, Any]] = None
    claim_token: Optional[str] = Field(None, alias="claimToken")
    lease_expires_at: Optional[datetime] = Field(None, alias="leaseExpiresAt")


class IngestAck(BaseModel):
    id: str
    status: JobStatus


class StatusView(BaseModel):
    status: JobStatus
    result: Optional[JobResult] = None
    error: Optional[JobFailure] = None
