# src/dcdn/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying operations.
# ---------------------------------------------------------------------------

from __future__ import annotations

from typing import Any, Dict

from dcdn.runtime.domain_dispatch import apply_op
from dcdn.runtime.errors import ApplyError
from dcdn.runtime.op_types import operation_from_json
from dcdn.runtime.responses import ErrorResponse, OpResponse, success_response
from dcdn.runtime.working_state import WorkingState

Json = Dict[str, Any]


def apply_op_atomic(state: Json, op: Any, now_us: int) -> Json:
    """Apply an operation with fail-atomic semantics.

    On success:
      - state is updated as if apply_op() ran directly.

    On ApplyError:
      - state remains unchanged.

    The handlers run against a copy-on-write WorkingState; only the entries
    they touched are folded back into `state`, in place, once they return.
    """

    op_norm = operation_from_json(op)

    ws = WorkingState(state)
    meta = apply_op(ws.view, op_norm, now_us)
    ws.merge_into()
    return meta


def execute_op(state: Json, op: Any, now_us: int) -> OpResponse:
    """Apply one operation and translate the outcome into a tagged response.

    Caller errors (ApplyError) become ErrorResponse; nothing else is caught.
    """
    try:
        op_norm = operation_from_json(op)
        meta = apply_op_atomic(state, op_norm, now_us)
    except ApplyError as e:
        return ErrorResponse.from_apply_error(e)
    return success_response(op_norm, meta)


__all__ = ["ApplyError", "apply_op", "apply_op_atomic", "execute_op", "Json"]
