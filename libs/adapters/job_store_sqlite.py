# libs/adapters/job_store_sqlite.py
from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from libs.contracts.job_models import FarmJob, JobStatus, utcnow
from .errors import ConflictError, NotFoundError, StoreUnavailableError
from .job_store import Expected, Mutation, apply_claim, describe_expected, finalize, status_matches


class SqliteJobStore:
    """
    Durable single-file store (WAL).
      - jobs        : one row per job, full document as JSON + indexed status/seq
      - enqueue_log : AUTOINCREMENT key is the monotonic FIFO sequence
    Every primitive runs inside BEGIN IMMEDIATE, so read-check-write is one
    step for other threads *and* other processes sharing the file.
    """
    engine = "sqlite"

    def __init__(
        self,
        path: str | Path = "data/farm_jobs.db",
        *,
        clock: Callable[[], datetime] = utcnow,
        busy_timeout: float = 5.0,
    ):
        self.path = Path(path)
        self.location = str(self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock
        self._lock = threading.RLock()
        try:
            # autocommit mode; transactions are explicit
            self.conn = sqlite3.connect(self.path, timeout=busy_timeout, check_same_thread=False, isolation_level=None)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")
            self._init_schema()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"cannot open job store at {self.path}: {e}") from e

    def _init_schema(self) -> None:
        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            status TEXT NOT NULL,
            seq INTEGER,
            doc TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS ix_jobs_status_seq ON jobs (status, seq, id)")
        self.conn.execute("""
        CREATE TABLE IF NOT EXISTS enqueue_log (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """)

    # --------------- public API ---------------

    def get(self, job_id: str) -> FarmJob:
        with self._read() as conn:
            row = conn.execute("SELECT doc FROM jobs WHERE id=?", (job_id,)).fetchone()
        if row is None:
            raise NotFoundError(job_id)
        return FarmJob.model_validate_json(row["doc"])

    def list_jobs(self, status: Optional[JobStatus] = None) -> list[FarmJob]:
        with self._read() as conn:
            if status is None:
                rows = conn.execute("SELECT doc FROM jobs ORDER BY created_at, id").fetchall()
            else:
                rows = conn.execute(
                    "SELECT doc FROM jobs WHERE status=? ORDER BY created_at, id", (status.value,)
                ).fetchall()
        return [FarmJob.model_validate_json(r["doc"]) for r in rows]

    def create(self, attributes: dict, *, job_id: Optional[str] = None) -> FarmJob:
        now = self.clock()
        fields = {"attributes": dict(attributes), "created_at": now, "updated_at": now}
        if job_id is not None:
            fields["id"] = job_id
        rec = FarmJob(**fields)
        with self._txn() as conn:
            if conn.execute("SELECT 1 FROM jobs WHERE id=?", (rec.id,)).fetchone():
                raise ConflictError(f"job already exists: {rec.id}")
            conn.execute(
                "INSERT INTO jobs (id, status, seq, doc, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
                (rec.id, rec.status.value, None, rec.model_dump_json(), now.isoformat(), now.isoformat()),
            )
        return rec

    def delete(self, job_id: str) -> None:
        with self._txn() as conn:
            cur = conn.execute("DELETE FROM jobs WHERE id=?", (job_id,))
            if cur.rowcount == 0:
                raise NotFoundError(job_id)

    def atomic_update(self, job_id: str, expected: Expected, mutation: Mutation) -> FarmJob:
        with self._txn() as conn:
            row = conn.execute("SELECT doc FROM jobs WHERE id=?", (job_id,)).fetchone()
            if row is None:
                raise NotFoundError(job_id)
            current = FarmJob.model_validate_json(row["doc"])
            if not status_matches(current.status, expected):
                raise ConflictError(f"job {job_id} is {current.status}, expected {describe_expected(expected)}")
            updated = finalize(mutation(current), next_seq=lambda: self._next_seq(conn, job_id), now=self.clock())
            if updated.id != job_id:
                raise ValueError("mutation must not change the job id")
            self._write(conn, updated)
        return updated

    def claim_oldest_queued(self, lease_seconds: float) -> Optional[FarmJob]:
        with self._txn() as conn:
            row = conn.execute(
                "SELECT id, doc FROM jobs WHERE status=? ORDER BY seq, id LIMIT 1", (JobStatus.QUEUED.value,)
            ).fetchone()
            if row is None:
                return None
            now = self.clock()
            claimed = finalize(
                apply_claim(FarmJob.model_validate_json(row["doc"]), now=now, lease_seconds=lease_seconds),
                next_seq=lambda: self._next_seq(conn, row["id"]),
                now=now,
            )
            self._write(conn, claimed)
        return claimed

    def ping(self) -> bool:
        try:
            with self._read() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except StoreUnavailableError:
            return False

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # --------------- internal helpers ---------------

    @contextmanager
    def _txn(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"job store busy/unavailable: {e}") from e
            try:
                yield self.conn
            except sqlite3.Error as e:
                self._rollback()
                raise StoreUnavailableError(f"job store write failed: {e}") from e
            except BaseException:
                self._rollback()
                raise
            else:
                try:
                    self.conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._rollback()
                    raise StoreUnavailableError(f"job store commit failed: {e}") from e

    def _rollback(self) -> None:
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK")

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self.conn
            except sqlite3.Error as e:
                raise StoreUnavailableError(f"job store read failed: {e}") from e

    def _next_seq(self, conn: sqlite3.Connection, job_id: str) -> int:
        cur = conn.execute(
            "INSERT INTO enqueue_log (job_id, created_at) VALUES (?, ?)", (job_id, self.clock().isoformat())
        )
        seq = int(cur.lastrowid)
        # AUTOINCREMENT 的高水位记在 sqlite_sequence，旧行删掉也不会复用序号
        conn.execute("DELETE FROM enqueue_log WHERE seq < ?", (seq,))
        return seq

    @staticmethod
    def _write(conn: sqlite3.Connection, job: FarmJob) -> None:
        seq = job.envelope.seq if job.envelope is not None else None
        conn.execute(
            "UPDATE jobs SET status=?, seq=?, doc=?, updated_at=? WHERE id=?",
            (job.status.value, seq, job.model_dump_json(), job.updated_at.isoformat(), job.id),
        )
