from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from dcdn.api.errors import ApiError
from dcdn.api.routes_public_parts.common import _execute, _op_result, _query
from dcdn.api.schemas import RegisterNodeRequest, ReportUsageRequest
from dcdn.runtime import queries

router = APIRouter()

Json = Dict[str, Any]


@router.post("/nodes")
def nodes_register(request: Request, body: RegisterNodeRequest) -> Json:
    resp = _execute(
        request,
        {"op": "RegisterNode", "node_id": body.node_id, "location": body.location, "capacity": body.capacity},
    )
    return _op_result(resp)


@router.get("/nodes/{node_id}")
def nodes_get(request: Request, node_id: str) -> Json:
    rec = _query(request, queries.node, node_id)
    if rec is None:
        raise ApiError.not_found("node_not_found", "Node does not exist", {"node_id": node_id})
    return {"ok": True, "node": rec}


@router.get("/nodes/{node_id}/performance")
def nodes_performance(request: Request, node_id: str) -> Json:
    perf = _query(request, queries.node_performance, node_id)
    if perf is None:
        raise ApiError.not_found("node_not_found", "Node does not exist", {"node_id": node_id})
    return {"ok": True, "performance": perf}


@router.post("/nodes/{node_id}/usage")
def nodes_report_usage(request: Request, node_id: str, body: ReportUsageRequest) -> Json:
    resp = _execute(
        request,
        {"op": "ReportUsage", "node_id": node_id, "content_id": body.content_id, "bytes_served": body.bytes_served},
    )
    return _op_result(resp)
