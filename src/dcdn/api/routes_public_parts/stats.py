from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from dcdn.api.routes_public_parts.common import _query
from dcdn.runtime import queries

router = APIRouter()

Json = Dict[str, Any]


@router.get("/stats")
def stats(request: Request) -> Json:
    """Aggregate counters (node_count, total_capacity, total_data_served) + content_count."""
    out: Json = {"ok": True}
    out.update(_query(request, queries.stats))
    return out
