# src/dcdn/runtime/sqlite_db.py
from __future__ import annotations

"""SQLite persistence for the registry.

Every registry entry is its own keyed row:

  content          id -> record_json      (metadata + access bookkeeping)
  content_payload  id -> content_b64      (written once, never updated)
  nodes            id -> record_json
  availability     content_id -> nodes_json
  registry_kv      seq / counters / params
  op_log           one row per operation outcome

An operation commits only the rows it touched, plus its op_log row, in one
write transaction. Payloads are never loaded wholesale: SqlitePayloadView
reads them by id on demand.
"""

import json
import os
import random
import sqlite3
import time
from collections.abc import Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from dcdn.runtime.state_invariants import ensure_state
from dcdn.runtime.working_state import RegistryChanges

Json = Dict[str, Any]

_SYNC_MODES = ("OFF", "NORMAL", "FULL", "EXTRA")

# (state container, table, key column, value column)
_RECORD_TABLES: Tuple[Tuple[str, str, str, str], ...] = (
    ("content", "content", "id", "record_json"),
    ("nodes", "nodes", "id", "record_json"),
    ("availability", "availability", "content_id", "nodes_json"),
)
_ROW_COLUMNS = {c: (t, k, v) for c, t, k, v in _RECORD_TABLES}

_SCHEMA: Tuple[str, ...] = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS registry_kv (
      key TEXT PRIMARY KEY,
      value_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS content (
      id TEXT PRIMARY KEY,
      record_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS content_payload (
      id TEXT PRIMARY KEY,
      content_b64 TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS nodes (
      id TEXT PRIMARY KEY,
      record_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS availability (
      content_id TEXT PRIMARY KEY,
      nodes_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS op_log (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      seq INTEGER NOT NULL,
      op_kind TEXT NOT NULL,
      ok INTEGER NOT NULL,
      code TEXT NOT NULL,
      applied_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_op_log_seq ON op_log(seq);",
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: a non-JSON value reaching a row is a bug and must raise.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _env_flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in {"1", "true", "yes"}


def _is_lock_contention(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "database is locked" in msg or "database is busy" in msg


class _LockRetry:
    """Re-runs a statement while another writer holds the database lock.

    One instance spans a whole transaction, so BEGIN and COMMIT share the
    same deadline.
    """

    def __init__(self) -> None:
        self._deadline_ms = _now_ms() + max(250, _env_int("DCDN_SQLITE_WRITE_DEADLINE_MS", 30_000))
        self._base_s = max(1, _env_int("DCDN_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0
        self._cap_s = max(self._base_s, _env_int("DCDN_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)

    def execute(self, con: sqlite3.Connection, sql: str) -> None:
        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                if not _is_lock_contention(e) or _now_ms() >= self._deadline_ms:
                    raise
            delay = min(self._cap_s, self._base_s * (2 ** min(attempt, 8)))
            time.sleep(delay * random.uniform(0.5, 1.5))
            attempt += 1


class SqliteDB:
    """Connection factory and transaction helper for the registry database.

    Connections are never shared: each read or write opens its own, applies
    the pragma set below, and closes it afterwards.
    """

    SCHEMA_VERSION = 2

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def synchronous_mode() -> str:
        """FULL in prod, NORMAL otherwise; DCDN_SQLITE_SYNCHRONOUS overrides."""
        prod = (os.environ.get("DCDN_MODE") or "prod").strip().lower() == "prod"
        default = "FULL" if prod else "NORMAL"
        chosen = (os.environ.get("DCDN_SQLITE_SYNCHRONOUS") or default).strip().upper()
        return chosen if chosen in _SYNC_MODES else default

    @classmethod
    def pragma_settings(cls, connect_timeout_ms: int) -> List[Tuple[str, Any]]:
        cache_kib = max(0, _env_int("DCDN_SQLITE_CACHE_SIZE_KIB", 64 * 1024))
        return [
            ("synchronous", cls.synchronous_mode()),
            ("foreign_keys", "ON"),
            ("temp_store", "MEMORY"),
            ("wal_autocheckpoint", max(1, _env_int("DCDN_SQLITE_WAL_AUTOCHECKPOINT", 1000))),
            ("journal_size_limit", max(0, _env_int("DCDN_SQLITE_JOURNAL_SIZE_LIMIT", 64 * 1024 * 1024))),
            # Negative cache_size is in KiB.
            ("cache_size", -cache_kib),
            ("busy_timeout", max(0, _env_int("DCDN_SQLITE_BUSY_TIMEOUT_MS", connect_timeout_ms))),
        ]

    def _open(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        timeout_ms = max(0, _env_int("DCDN_SQLITE_CONNECT_TIMEOUT_MS", 30_000))

        # isolation_level=None: transactions are opened explicitly in write_tx().
        con = sqlite3.connect(self.path, timeout=timeout_ms / 1000.0, isolation_level=None, check_same_thread=False)
        con.row_factory = sqlite3.Row

        journal = str(con.execute("PRAGMA journal_mode=WAL;").fetchone()[0]).lower()
        if journal != "wal" and not _env_flag("DCDN_SQLITE_ALLOW_NON_WAL"):
            con.close()
            raise RuntimeError(f"sqlite refused WAL journaling (journal_mode={journal!r})")

        for name, value in self.pragma_settings(timeout_ms):
            con.execute(f"PRAGMA {name}={value};")
        return con

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._open()
        try:
            yield con
        finally:
            con.close()

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolled back if the body raises.

        Lock contention on BEGIN or COMMIT is retried with jittered backoff
        until DCDN_SQLITE_WRITE_DEADLINE_MS; any other error is raised as is.
        """
        retry = _LockRetry()
        with self.connection() as con:
            retry.execute(con, "BEGIN IMMEDIATE;")
            try:
                yield con
                retry.execute(con, "COMMIT;")
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise

    def init_schema(self) -> None:
        with self.write_tx() as con:
            for ddl in _SCHEMA:
                con.execute(ddl)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            have = str(row["value"])
            if have != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"sqlite schema_version is {have}, this build expects {self.SCHEMA_VERSION}; not opening it"
                )


class SqlitePayloadView(Mapping):
    """Read-only content_id -> base64 payload mapping over content_payload."""

    def __init__(self, db: SqliteDB) -> None:
        self._db = db

    def __getitem__(self, content_id: str) -> str:
        with self._db.connection() as con:
            row = con.execute("SELECT content_b64 FROM content_payload WHERE id=?;", (content_id,)).fetchone()
        if row is None:
            raise KeyError(content_id)
        return str(row["content_b64"])

    def __contains__(self, content_id: object) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM content_payload WHERE id=?;", (content_id,)).fetchone() is not None

    def __iter__(self) -> Iterator[str]:
        with self._db.connection() as con:
            ids = [str(r["id"]) for r in con.execute("SELECT id FROM content_payload ORDER BY id;")]
        return iter(ids)

    def __len__(self) -> int:
        with self._db.connection() as con:
            return int(con.execute("SELECT COUNT(*) FROM content_payload;").fetchone()[0])


class SqliteRegistryStore:
    """Registry state persisted as keyed rows.

      - load(): rebuild in-memory state (payloads stay in SQLite)
      - write(st): upsert every row of `st` (bootstrap)
      - commit(changes, ...): upsert the touched rows and append an op_log
        row in one write transaction
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM registry_kv WHERE key='seq';").fetchone() is not None

    def load(self) -> Json:
        with self._db.connection() as con:
            kv = {
                str(r["key"]): json.loads(str(r["value_json"]))
                for r in con.execute("SELECT key, value_json FROM registry_kv;")
            }
            if "seq" not in kv:
                raise FileNotFoundError("sqlite registry has no seq row")
            st: Json = {
                "seq": int(kv["seq"]),
                "counters": dict(kv.get("counters") or {}),
                "params": dict(kv.get("params") or {}),
            }
            for container, table, key_col, val_col in _RECORD_TABLES:
                st[container] = {
                    str(r[key_col]): json.loads(str(r[val_col]))
                    for r in con.execute(f"SELECT {key_col}, {val_col} FROM {table};")
                }
        st["payloads"] = SqlitePayloadView(self._db)
        return ensure_state(st)

    @staticmethod
    def _put_kv(con: sqlite3.Connection, key: str, value: Any, ts_ms: int) -> None:
        con.execute(
            """
            INSERT INTO registry_kv(key, value_json, updated_ts_ms) VALUES(?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value_json=excluded.value_json, updated_ts_ms=excluded.updated_ts_ms;
            """,
            (key, _canon_json(value), ts_ms),
        )

    @staticmethod
    def _put_rows(con: sqlite3.Connection, container: str, rows: Mapping, ts_ms: int) -> None:
        if not rows:
            return
        table, key_col, val_col = _ROW_COLUMNS[container]
        con.executemany(
            f"""
            INSERT INTO {table}({key_col}, {val_col}, updated_ts_ms) VALUES(?, ?, ?)
            ON CONFLICT({key_col}) DO UPDATE SET {val_col}=excluded.{val_col}, updated_ts_ms=excluded.updated_ts_ms;
            """,
            [(str(k), _canon_json(v), ts_ms) for k, v in rows.items()],
        )

    @staticmethod
    def _put_payloads(con: sqlite3.Connection, payloads: Mapping) -> None:
        # Payloads are immutable: an existing row is never rewritten.
        con.executemany(
            "INSERT OR IGNORE INTO content_payload(id, content_b64) VALUES(?, ?);",
            [(str(k), str(v)) for k, v in payloads.items()],
        )

    def write(self, st: Json) -> None:
        if not isinstance(st, Mapping):
            raise ValueError("registry write expects a mapping")
        ts = _now_ms()
        with self._db.write_tx() as con:
            self._put_kv(con, "seq", int(st.get("seq") or 0), ts)
            self._put_kv(con, "counters", dict(st.get("counters") or {}), ts)
            self._put_kv(con, "params", dict(st.get("params") or {}), ts)
            for container, _table, _k, _v in _RECORD_TABLES:
                self._put_rows(con, container, st.get(container) or {}, ts)
            payloads = st.get("payloads")
            # A SqlitePayloadView is already durable.
            if isinstance(payloads, dict):
                self._put_payloads(con, payloads)

    def put_params(self, params: Json) -> None:
        with self._db.write_tx() as con:
            self._put_kv(con, "params", dict(params), _now_ms())

    def commit(
        self,
        changes: Optional[RegistryChanges],
        *,
        op_kind: str,
        ok: bool,
        code: str = "",
        seq: Optional[int] = None,
    ) -> None:
        """Persist one operation outcome.

        Rejected operations change nothing; pass changes=None with the current
        seq and only the op_log row is written.
        """
        if seq is None:
            seq = changes.seq if changes is not None else 0
        ts = _now_ms()
        with self._db.write_tx() as con:
            if changes is not None:
                self._put_payloads(con, changes.payloads)
                self._put_rows(con, "content", changes.content, ts)
                self._put_rows(con, "nodes", changes.nodes, ts)
                self._put_rows(con, "availability", changes.availability, ts)
                self._put_kv(con, "counters", changes.counters, ts)
                self._put_kv(con, "seq", int(changes.seq), ts)
            con.execute(
                "INSERT INTO op_log(seq, op_kind, ok, code, applied_ts_ms) VALUES(?, ?, ?, ?, ?);",
                (int(seq), str(op_kind), 1 if ok else 0, str(code or ""), ts),
            )

    def op_log(self, *, limit: int = 100) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT id, seq, op_kind, ok, code, applied_ts_ms FROM op_log ORDER BY id DESC LIMIT ?;",
                (max(0, int(limit)),),
            ).fetchall()
        return [
            {
                "id": int(r["id"]),
                "seq": int(r["seq"]),
                "op_kind": str(r["op_kind"]),
                "ok": bool(r["ok"]),
                "code": str(r["code"]),
                "applied_ts_ms": int(r["applied_ts_ms"]),
            }
            for r in rows
        ]


__all__ = ["SqliteDB", "SqlitePayloadView", "SqliteRegistryStore"]
