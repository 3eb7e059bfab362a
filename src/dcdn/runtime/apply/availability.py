# src/dcdn/runtime/apply/availability.py
from __future__ import annotations

"""dcdn.runtime.apply.availability

Content availability index: content_id -> [node_id, ...].

The list has set semantics (no duplicates); insertion order is incidental.
An entry is absent, not empty, until the first node is recorded for it.

Validation is deliberately asymmetric:
  - RequestCache requires both the content and the node to exist
  - UpdateAvailability validates neither and always succeeds
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict, List

from dcdn.runtime.apply.content import require_content
from dcdn.runtime.apply.nodes import require_node
from dcdn.runtime.op_types import RequestCache, UpdateAvailability
from dcdn.runtime.state_invariants import ensure_state

Json = Dict[str, Any]


def _index(state: Json) -> Json:
    return ensure_state(state)["availability"]


def content_nodes(state: Json, content_id: str) -> List[str]:
    """Node ids recorded for a content id (empty if no entry). Does not touch `state`."""
    idx = state.get("availability")
    cur = idx.get(content_id) if isinstance(idx, Mapping) else None
    if not isinstance(cur, list):
        return []
    return [str(n) for n in cur]


def _apply_request_cache(state: Json, op: RequestCache, now_us: int) -> Json:
    require_content(state, op.content_id, reason="Content does not exist")
    require_node(state, op.node_id)

    idx = _index(state)
    nodes = content_nodes(state, op.content_id)
    added = op.node_id not in nodes
    if added:
        nodes.append(op.node_id)
    idx[op.content_id] = nodes
    return {"applied": RequestCache.KIND, "content_id": op.content_id, "node_id": op.node_id, "deduped": not added}


def _apply_update_availability(state: Json, op: UpdateAvailability, now_us: int) -> Json:
    idx = _index(state)
    cur = idx.get(op.content_id)

    if isinstance(cur, list):
        nodes = [str(n) for n in cur]
        if op.available:
            if op.node_id not in nodes:
                nodes.append(op.node_id)
        else:
            nodes = [n for n in nodes if n != op.node_id]
        idx[op.content_id] = nodes
    elif op.available:
        idx[op.content_id] = [op.node_id]

    return {
        "applied": UpdateAvailability.KIND,
        "content_id": op.content_id,
        "node_id": op.node_id,
        "available": bool(op.available),
    }


HANDLERS: Dict[type, Callable[[Json, Any, int], Json]] = {
    RequestCache: _apply_request_cache,
    UpdateAvailability: _apply_update_availability,
}

__all__ = ["HANDLERS", "content_nodes"]
