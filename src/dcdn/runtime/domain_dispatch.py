# src/dcdn/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict

from dcdn.runtime.errors import ApplyError
from dcdn.runtime.op_types import OPERATION_TYPES, operation_from_json
from dcdn.runtime.state_invariants import ensure_state

# Domain handler tables (operation class -> apply fn)
from dcdn.runtime.apply.availability import HANDLERS as _AVAILABILITY_HANDLERS
from dcdn.runtime.apply.content import HANDLERS as _CONTENT_HANDLERS
from dcdn.runtime.apply.nodes import HANDLERS as _NODE_HANDLERS

Json = Dict[str, Any]
ApplyFn = Callable[[Json, Any, int], Json]


def _build_handlers() -> Dict[type, ApplyFn]:
    out: Dict[type, ApplyFn] = {}
    for table in (_CONTENT_HANDLERS, _NODE_HANDLERS, _AVAILABILITY_HANDLERS):
        for cls, fn in table.items():
            if cls in out:
                raise RuntimeError(f"operation {cls.__name__} claimed by more than one domain")
            out[cls] = fn

    missing = [t.__name__ for t in OPERATION_TYPES if t not in out]
    if missing:
        raise RuntimeError(f"operations without a handler: {missing}")
    return out


_HANDLERS: Dict[type, ApplyFn] = _build_handlers()


def apply_op(state: Json, op: Any, now_us: int) -> Json:
    """Dispatch one operation to the handler for its class.

    Raw dict operations are parsed first. Preconditions are checked by each
    handler before it mutates anything.
    """

    ensure_state(state)

    op_norm = operation_from_json(op)
    fn = _HANDLERS.get(type(op_norm))
    if fn is None:
        raise ApplyError("invalid_op", "op_not_implemented", {"op": type(op_norm).__name__})

    out = fn(state, op_norm, int(now_us))
    state["seq"] = int(state.get("seq") or 0) + 1
    return out


__all__ = ["apply_op"]
