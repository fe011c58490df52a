# test/test_job_models.py
import pydantic
import pytest

from libs.contracts.farm import ComputeResult, FarmCreate
from libs.contracts.job_models import Envelope, FarmJob, JobFailure, JobResult, JobStatus


def test_new_job_has_no_envelope_or_result():
    job = FarmJob(id="f1", attributes={"temp": 30})
    assert job.status == JobStatus.NEW
    assert job.envelope is None and job.result is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"status": JobStatus.QUEUED},                                               # missing envelope
        {"status": JobStatus.NEW, "envelope": Envelope(snapshot={})},                # stray envelope
        {"status": JobStatus.DONE},                                                 # missing result
        {"status": JobStatus.DONE, "result": JobResult(), "envelope": Envelope(snapshot={})},
        {"status": JobStatus.IN_PROGRESS, "envelope": Envelope(snapshot={})},        # unclaimed in progress
        {"status": JobStatus.FAILED},                                               # missing error
        {"status": JobStatus.NEW, "result": JobResult()},
    ],
)
def test_invariants_reject_inconsistent_jobs(kwargs):
    with pytest.raises(pydantic.ValidationError):
        FarmJob(id="f1", **kwargs)


def test_claimed_envelope_requires_token():
    with pytest.raises(pydantic.ValidationError):
        Envelope(snapshot={}, claimed=True)
    with pytest.raises(pydantic.ValidationError):
        Envelope(snapshot={}, claim_token="abc")


def test_failed_job_carries_error():
    job = FarmJob(id="f1", status=JobStatus.FAILED, error=JobFailure(reason="boom"))
    assert job.error.reason == "boom"


def test_result_keeps_extra_fields_and_dumps_camel_case():
    res = JobResult(efficiency=82)
    dumped = res.model_dump(mode="json", by_alias=True)
    assert dumped["efficiency"] == 82
    assert "completedAt" in dumped


def test_compute_result_accepts_farm_id_alias_and_strips_routing_keys():
    body = ComputeResult.model_validate({"farmId": " f1 ", "claimToken": "t", "sprayEfficiency": 71.5, "note": "x"})
    assert body.job_id() == "f1"
    assert body.fields() == {"sprayEfficiency": 71.5, "note": "x"}


def test_compute_result_without_id():
    assert ComputeResult.model_validate({"coverage": 1}).job_id() is None
    assert ComputeResult.model_validate({"id": "   "}).job_id() is None


def test_farm_create_payload_excludes_id_and_unset_fields():
    body = FarmCreate.model_validate({"id": "f1", "farm_name": "North", "temp": 30, "custom": "y"})
    assert body.to_payload() == {"farm_name": "North", "temp": 30.0, "custom": "y"}
