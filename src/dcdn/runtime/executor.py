from __future__ import annotations

import copy
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from dcdn.runtime import metrics
from dcdn.runtime.domain_dispatch import apply_op
from dcdn.runtime.errors import ApplyError
from dcdn.runtime.event_logging import log_event
from dcdn.runtime.op_types import operation_from_json
from dcdn.runtime.responses import ErrorResponse, OpResponse, success_response
from dcdn.runtime.sqlite_db import SqliteDB, SqliteRegistryStore
from dcdn.runtime.state_invariants import COUNTER_KEYS, ensure_state
from dcdn.runtime.working_state import WorkingState

Json = Dict[str, Any]

_log = logging.getLogger("dcdn.executor")


def _now_us() -> int:
    return int(time.time() * 1_000_000)


def _ensure_parent(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


class DcdnExecutor:
    """Registry executor using SQLite for persistence.

    Operations are applied strictly one at a time. Each successful operation
    commits the rows it touched plus an op_log row in a single write
    transaction before the next one starts; if the commit fails the
    pre-operation state stays current.
    """

    def __init__(
        self,
        *,
        db_path: str,
        instance_id: str,
        clock_us: Optional[Callable[[], int]] = None,
    ) -> None:
        self.instance_id = str(instance_id)
        self.db_path = str(db_path)
        _ensure_parent(self.db_path)

        self._clock_us = clock_us or _now_us
        self._lock = threading.Lock()

        self._db = SqliteDB(path=self.db_path)
        self._store = SqliteRegistryStore(db=self._db)

        if not self._store.exists():
            self._store.write(self._initial_state())
        self.state = self._store.load()

        st_instance = str(self.state["params"].get("instance_id") or "").strip()
        if st_instance and st_instance != self.instance_id:
            raise ExecutorError(
                f"instance_id mismatch: db={st_instance!r} executor={self.instance_id!r}. Refuse to start."
            )
        if not st_instance:
            self.state["params"]["instance_id"] = self.instance_id
            self._store.put_params(self.state["params"])

        self._publish_gauges()
        log_event(_log, "executor_started", instance_id=self.instance_id, seq=int(self.state["seq"]))

    def _initial_state(self) -> Json:
        st = ensure_state({})
        st["params"]["instance_id"] = self.instance_id
        st["params"]["created_ms"] = int(self._clock_us() // 1000)
        return st

    def _publish_gauges(self) -> None:
        c = self.state["counters"]
        for key in COUNTER_KEYS:
            metrics.set_gauge(key, int(c.get(key) or 0))
        metrics.set_gauge("content_count", len(self.state["content"]))

    # ----------------------------
    # Public accessors
    # ----------------------------

    @property
    def store(self) -> SqliteRegistryStore:
        return self._store

    def read_state(self) -> Json:
        """Deep copy of the current state, without payloads."""
        with self._lock:
            return {k: copy.deepcopy(v) for k, v in self.state.items() if k != "payloads"}

    def query(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a read-only projection against the live state under the lock.

        `fn` must not mutate the state and must return fresh objects.
        """
        with self._lock:
            return fn(self.state, *args)

    def op_log(self, *, limit: int = 100) -> List[Json]:
        return self._store.op_log(limit=limit)

    # ----------------------------
    # Operation execution
    # ----------------------------

    def execute(self, op: Any) -> OpResponse:
        """Apply one operation and return its tagged response.

        Caller errors come back as ErrorResponse. Storage errors propagate and
        leave the in-memory state as it was before the operation.
        """
        with self._lock:
            try:
                op_norm = operation_from_json(op)
            except ApplyError as e:
                return self._reject(str((op or {}).get("op") or "") if isinstance(op, dict) else "", e)

            kind = type(op_norm).__name__

            # Touched entries reach self.state only once they are durable.
            ws = WorkingState(self.state)
            try:
                meta = apply_op(ws.view, op_norm, self._clock_us())
            except ApplyError as e:
                return self._reject(kind, e)

            try:
                self._store.commit(ws.changes(), op_kind=kind, ok=True)
            except Exception:
                log_event(_log, "op_commit_failed", level=logging.ERROR, op=kind, seq=int(self.state["seq"]))
                raise
            ws.merge_into()

            metrics.inc_counter("ops_applied_total")
            metrics.inc_counter(f"op_{kind.lower()}_total")
            self._publish_gauges()
            log_event(_log, "op_applied", op=kind, seq=int(self.state["seq"]))
            return success_response(op_norm, meta)

    def _reject(self, kind: str, e: ApplyError) -> ErrorResponse:
        seq = int(self.state["seq"])
        self._store.commit(None, op_kind=kind or "unknown", ok=False, code=e.code, seq=seq)
        metrics.inc_counter("ops_rejected_total")
        log_event(_log, "op_rejected", op=kind or "unknown", seq=seq, code=e.code, reason=e.reason)
        return ErrorResponse.from_apply_error(e)
