# src/dcdn/runtime/apply/nodes.py
from __future__ import annotations

"""dcdn.runtime.apply.nodes

Node registry apply semantics.

Key invariants:
  - one NodeRecord per node_id; nodes are never deregistered here
  - capacity is fixed at registration
  - used_capacity only grows and is clamped to capacity (never an error)
  - counters["node_count"], counters["total_capacity"] and
    counters["total_data_served"] always equal the sums over node records;
    they are updated in the same step as the node write, never recomputed
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict

from dcdn.runtime.apply.content import require_content
from dcdn.runtime.errors import NODE_ALREADY_REGISTERED, NODE_NOT_FOUND, ApplyError
from dcdn.runtime.op_types import RegisterNode, ReportUsage
from dcdn.runtime.state_invariants import counters, ensure_state

Json = Dict[str, Any]


def _as_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def _nodes(state: Json) -> Json:
    return ensure_state(state)["nodes"]


def get_node_record(state: Json, node_id: str) -> Json | None:
    """Record for node_id, or None. Does not touch `state`."""
    table = state.get("nodes")
    if not isinstance(table, Mapping):
        return None
    rec = table.get(node_id)
    return rec if isinstance(rec, dict) else None


def node_exists(state: Json, node_id: str) -> bool:
    return get_node_record(state, node_id) is not None


def require_node(state: Json, node_id: str) -> Json:
    rec = get_node_record(state, node_id)
    if rec is None:
        raise ApplyError(NODE_NOT_FOUND, "Node does not exist", {"node_id": node_id})
    return rec


def _apply_register_node(state: Json, op: RegisterNode, now_us: int) -> Json:
    if node_exists(state, op.node_id):
        raise ApplyError(NODE_ALREADY_REGISTERED, "Node already registered", {"node_id": op.node_id})

    capacity = int(op.capacity)
    _nodes(state)[op.node_id] = {
        "id": op.node_id,
        "location": op.location,
        "capacity": capacity,
        "used_capacity": 0,
        "available": True,
        "created_at": int(now_us),
        "data_served": 0,
    }

    c = counters(state)
    c["node_count"] = _as_int(c.get("node_count")) + 1
    c["total_capacity"] = _as_int(c.get("total_capacity")) + capacity
    return {"applied": RegisterNode.KIND, "node_id": op.node_id}


def _apply_report_usage(state: Json, op: ReportUsage, now_us: int) -> Json:
    # Node first, then content.
    rec = require_node(state, op.node_id)
    require_content(state, op.content_id, reason="Content does not exist")

    served = int(op.bytes_served)
    capacity = _as_int(rec.get("capacity"))

    rec["data_served"] = _as_int(rec.get("data_served")) + served
    rec["used_capacity"] = min(_as_int(rec.get("used_capacity")) + served, capacity)
    _nodes(state)[op.node_id] = rec

    # The content dimension is validated only; served bytes are attributed to the node.
    c = counters(state)
    c["total_data_served"] = _as_int(c.get("total_data_served")) + served
    return {"applied": ReportUsage.KIND, "node_id": op.node_id, "bytes_served": served}


HANDLERS: Dict[type, Callable[[Json, Any, int], Json]] = {
    RegisterNode: _apply_register_node,
    ReportUsage: _apply_report_usage,
}

__all__ = ["HANDLERS", "get_node_record", "node_exists", "require_node"]
