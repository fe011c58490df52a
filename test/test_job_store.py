# test/test_job_store.py
import threading

import pytest

from libs.adapters.errors import ConflictError, NotFoundError, StoreUnavailableError
from libs.adapters.job_store_sqlite import SqliteJobStore
from libs.contracts.job_models import Envelope, FarmJob, JobStatus

from conftest import assert_invariants


def _enqueue(store, job_id, snapshot=None):
    return store.atomic_update(
        job_id,
        None,
        lambda j: j.model_copy(update={
            "status": JobStatus.QUEUED,
            "envelope": Envelope(snapshot=snapshot if snapshot is not None else dict(j.attributes)),
            "result": None,
            "error": None,
        }),
    )


def test_create_get_and_duplicate(store):
    job = store.create({"temp": 30}, job_id="f1")
    assert job.status == JobStatus.NEW
    assert store.get("f1").attributes == {"temp": 30}
    with pytest.raises(ConflictError):
        store.create({}, job_id="f1")


def test_create_generates_id(store):
    job = store.create({"farm_name": "North"})
    assert job.id and store.get(job.id).attributes["farm_name"] == "North"


def test_get_unknown_raises(store):
    with pytest.raises(NotFoundError):
        store.get("missing-id")
    with pytest.raises(NotFoundError):
        store.atomic_update("missing-id", None, lambda j: j)


def test_atomic_update_status_mismatch_changes_nothing(store):
    store.create({"temp": 30}, job_id="f1")
    before = store.get("f1")
    with pytest.raises(ConflictError):
        store.atomic_update("f1", JobStatus.IN_PROGRESS, lambda j: j.model_copy(update={"attributes": {}}))
    assert store.get("f1") == before


def test_atomic_update_accepts_status_collection(store):
    store.create({}, job_id="f1")
    job = store.atomic_update("f1", {JobStatus.NEW, JobStatus.DONE}, lambda j: j.model_copy(update={"attributes": {"a": 1}}))
    assert job.attributes == {"a": 1}


def test_mutation_can_veto(store):
    store.create({"temp": 30}, job_id="f1")

    def veto(job):
        raise ConflictError("nope")

    with pytest.raises(ConflictError):
        store.atomic_update("f1", None, veto)
    assert store.get("f1").attributes == {"temp": 30}


def test_store_assigns_increasing_seq(store):
    for jid in ("a", "b", "c"):
        store.create({}, job_id=jid)
    seqs = [_enqueue(store, jid).envelope.seq for jid in ("a", "b", "c")]
    assert seqs == sorted(seqs) and len(set(seqs)) == 3
    # re-enqueue gets a newer seq
    assert _enqueue(store, "a").envelope.seq > seqs[-1]


def test_claim_is_fifo_and_reenqueue_moves_to_back(store):
    for jid in ("A", "B"):
        store.create({"name": jid}, job_id=jid)
    _enqueue(store, "A")
    _enqueue(store, "B")
    _enqueue(store, "A")  # A refreshed after B

    first = store.claim_oldest_queued(60)
    second = store.claim_oldest_queued(60)
    assert (first.id, second.id) == ("B", "A")
    assert store.claim_oldest_queued(60) is None


def test_claim_sets_lease_and_token(store, clock):
    store.create({"temp": 30}, job_id="f1")
    _enqueue(store, "f1")
    job = store.claim_oldest_queued(120)
    assert job.status == JobStatus.IN_PROGRESS
    env = job.envelope
    assert env.claimed and env.claim_token
    assert env.claimed_at == clock()
    assert (env.lease_expires_at - env.claimed_at).total_seconds() == 120
    assert env.attempts == 1
    assert_invariants(store.get("f1"))


def test_claim_on_empty_store(store):
    assert store.claim_oldest_queued(60) is None
    store.create({}, job_id="f1")  # NEW is not claimable
    assert store.claim_oldest_queued(60) is None


def test_concurrent_claims_single_job_exactly_one_winner(store):
    store.create({"temp": 30}, job_id="f1")
    _enqueue(store, "f1")

    n = 8
    barrier = threading.Barrier(n)
    results = []
    lock = threading.Lock()

    def poll():
        barrier.wait()
        got = store.claim_oldest_queued(60)
        with lock:
            results.append(got)

    threads = [threading.Thread(target=poll) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [r for r in results if r is not None]
    assert len(winners) == 1 and winners[0].id == "f1"
    assert results.count(None) == n - 1


def test_concurrent_claims_hand_out_each_job_once(store):
    ids = [f"job-{i:02d}" for i in range(20)]
    for jid in ids:
        store.create({}, job_id=jid)
        _enqueue(store, jid)

    claimed = []
    lock = threading.Lock()

    def drain():
        while True:
            job = store.claim_oldest_queued(60)
            if job is None:
                return
            with lock:
                claimed.append(job.id)

    threads = [threading.Thread(target=drain) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(claimed) == ids


def test_list_jobs_filters_by_status(store):
    store.create({}, job_id="a")
    store.create({}, job_id="b")
    _enqueue(store, "b")
    assert [j.id for j in store.list_jobs(JobStatus.QUEUED)] == ["b"]
    assert {j.id for j in store.list_jobs()} == {"a", "b"}


def test_delete(store):
    store.create({}, job_id="f1")
    store.delete("f1")
    with pytest.raises(NotFoundError):
        store.get("f1")
    with pytest.raises(NotFoundError):
        store.delete("f1")


def test_returned_jobs_are_copies(store):
    store.create({"temp": 30}, job_id="f1")
    job = store.get("f1")
    job.attributes["temp"] = 99
    assert store.get("f1").attributes == {"temp": 30}


def test_ping(store):
    assert store.ping() is True


def test_sqlite_state_survives_reopen(tmp_path, clock):
    path = tmp_path / "jobs.db"
    s1 = SqliteJobStore(path, clock=clock)
    s1.create({"temp": 30}, job_id="f1")
    s1.create({"temp": 31}, job_id="f2")
    seq1 = _enqueue(s1, "f1").envelope.seq
    s1.close()

    s2 = SqliteJobStore(path, clock=clock)
    assert s2.get("f1").status == JobStatus.QUEUED
    # sequence keeps increasing across restarts
    assert _enqueue(s2, "f2").envelope.seq > seq1
    assert s2.claim_oldest_queued(60).id == "f1"
    s2.close()


def test_two_sqlite_handles_share_one_queue(tmp_path, clock):
    path = tmp_path / "jobs.db"
    a = SqliteJobStore(path, clock=clock)
    b = SqliteJobStore(path, clock=clock)
    a.create({}, job_id="f1")
    _enqueue(a, "f1")
    assert b.claim_oldest_queued(60).id == "f1"
    assert a.claim_oldest_queued(60) is None
    assert isinstance(a.get("f1"), FarmJob) and a.get("f1").status == JobStatus.IN_PROGRESS
    a.close()
    b.close()


def test_sqlite_enqueue_log_keeps_only_latest_row(tmp_path, clock):
    s = SqliteJobStore(tmp_path / "jobs.db", clock=clock)
    s.create({}, job_id="f1")
    seqs = [_enqueue(s, "f1").envelope.seq for _ in range(5)]
    assert seqs == sorted(seqs) and len(set(seqs)) == 5
    rows = s.conn.execute("SELECT seq FROM enqueue_log").fetchall()
    assert [r["seq"] for r in rows] == [seqs[-1]]
    s.close()

    # 删掉的旧序号不会被重新发出
    s = SqliteJobStore(tmp_path / "jobs.db", clock=clock)
    assert _enqueue(s, "f1").envelope.seq > seqs[-1]
    s.close()


def test_closed_sqlite_store_is_unavailable(tmp_path, clock):
    s = SqliteJobStore(tmp_path / "jobs.db", clock=clock)
    s.create({}, job_id="f1")
    s.close()

    with pytest.raises(StoreUnavailableError):
        _enqueue(s, "f1")
    with pytest.raises(StoreUnavailableError):
        s.claim_oldest_queued(60)
    with pytest.raises(StoreUnavailableError):
        s.get("f1")
    assert s.ping() is False
