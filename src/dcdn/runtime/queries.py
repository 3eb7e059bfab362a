from __future__ import annotations

"""Read-only projections over registry state.

Nothing here mutates `state` (not even to create missing containers);
every function returns fresh dicts/lists.
"""

from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from dcdn.runtime.apply.availability import content_nodes
from dcdn.runtime.apply.content import content_exists, get_content_record
from dcdn.runtime.apply.nodes import get_node_record
from dcdn.runtime.state_invariants import COUNTER_KEYS

Json = Dict[str, Any]

DEFAULT_POPULAR_LIMIT = 10


def _as_dict(x: Any) -> Mapping:
    return x if isinstance(x, Mapping) else {}


def _safe_int(x: Any, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default


def content_metadata(state: Json, content_id: str) -> Optional[Json]:
    rec = get_content_record(state, content_id)
    if rec is None:
        return None
    out: Json = {"id": str(rec.get("id") or content_id)}
    out.update(_as_dict(rec.get("metadata")))
    return out


def content_summary(rec: Json) -> Json:
    return {
        "id": str(rec.get("id") or ""),
        "metadata": dict(_as_dict(rec.get("metadata"))),
        "created_at": _safe_int(rec.get("created_at")),
        "last_accessed": _safe_int(rec.get("last_accessed")),
        "access_count": _safe_int(rec.get("access_count")),
    }


def availability(state: Json, content_id: str) -> List[str]:
    return content_nodes(state, content_id)


def popular_content(state: Json, limit: int = DEFAULT_POPULAR_LIMIT) -> List[Json]:
    """Most-downloaded content first; ties broken by id for a stable order."""
    recs = [r for r in _as_dict(state.get("content")).values() if isinstance(r, dict)]
    recs.sort(key=lambda r: (-_safe_int(r.get("access_count")), str(r.get("id") or "")))
    return [content_summary(r) for r in recs[: max(0, int(limit))]]


def node(state: Json, node_id: str) -> Optional[Json]:
    rec = get_node_record(state, node_id)
    return dict(rec) if rec is not None else None


def node_performance(state: Json, node_id: str) -> Optional[Json]:
    rec = get_node_record(state, node_id)
    if rec is None:
        return None
    capacity = _safe_int(rec.get("capacity"))
    used = _safe_int(rec.get("used_capacity"))
    utilization = (used / capacity) * 100.0 if capacity > 0 else 0.0
    return {
        "node_id": node_id,
        "data_served": _safe_int(rec.get("data_served")),
        "capacity_utilization": float(utilization),
        # No availability history is tracked yet.
        "reliability_score": 100.0,
    }


def stats(state: Json) -> Json:
    c = _as_dict(state.get("counters"))
    out: Json = {k: _safe_int(c.get(k)) for k in COUNTER_KEYS}
    out["content_count"] = len(_as_dict(state.get("content")))
    return out


def recompute_counters(state: Json) -> Json:
    """Derive the aggregate counters from node records.

    Used only to verify the incrementally maintained counters.
    """
    nodes = [r for r in _as_dict(state.get("nodes")).values() if isinstance(r, dict)]
    return {
        "node_count": len(nodes),
        "total_capacity": sum(_safe_int(r.get("capacity")) for r in nodes),
        "total_data_served": sum(_safe_int(r.get("data_served")) for r in nodes),
    }


__all__ = [
    "DEFAULT_POPULAR_LIMIT",
    "availability",
    "content_exists",
    "content_metadata",
    "content_summary",
    "node",
    "node_performance",
    "popular_content",
    "recompute_counters",
    "stats",
]
