from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from dcdn.api.errors import ApiError
from dcdn.api.routes_public_parts.common import _execute, _int_param, _op_result, _query
from dcdn.api.schemas import AvailabilityRequest, ContentMetadataIn, RequestCacheRequest, UploadRequest
from dcdn.runtime import queries

router = APIRouter()

Json = Dict[str, Any]


@router.post("/content")
def content_upload(request: Request, body: UploadRequest) -> Json:
    resp = _execute(
        request,
        {"op": "Upload", "content_b64": body.content_b64, "metadata": body.metadata.to_op_json()},
    )
    return _op_result(resp)


@router.get("/content/popular")
def content_popular(request: Request, limit: Optional[str] = None) -> Json:
    n = max(0, min(100, _int_param(limit, queries.DEFAULT_POPULAR_LIMIT)))
    return {"ok": True, "items": _query(request, queries.popular_content, n)}


@router.get("/content/{content_id}/exists")
def content_exists(request: Request, content_id: str) -> Json:
    return {"ok": True, "content_id": content_id, "exists": _query(request, queries.content_exists, content_id)}


@router.get("/content/{content_id}/metadata")
def content_metadata(request: Request, content_id: str) -> Json:
    meta = _query(request, queries.content_metadata, content_id)
    if meta is None:
        raise ApiError.not_found("content_not_found", "Content not found", {"content_id": content_id})
    return {"ok": True, "metadata": meta}


@router.put("/content/{content_id}/metadata")
def content_update_metadata(request: Request, content_id: str, body: ContentMetadataIn) -> Json:
    resp = _execute(request, {"op": "UpdateMetadata", "content_id": content_id, "metadata": body.to_op_json()})
    return _op_result(resp)


@router.get("/content/{content_id}/download")
def content_download(request: Request, content_id: str) -> Json:
    """Download records an access (access_count/last_accessed) like any other op."""
    return _op_result(_execute(request, {"op": "Download", "content_id": content_id}))


@router.get("/content/{content_id}/nodes")
def content_nodes(request: Request, content_id: str) -> Json:
    return {"ok": True, "content_id": content_id, "nodes": _query(request, queries.availability, content_id)}


@router.post("/content/{content_id}/cache")
def content_request_cache(request: Request, content_id: str, body: RequestCacheRequest) -> Json:
    resp = _execute(request, {"op": "RequestCache", "content_id": content_id, "node_id": body.node_id})
    return _op_result(resp)


@router.put("/content/{content_id}/availability/{node_id}")
def content_update_availability(request: Request, content_id: str, node_id: str, body: AvailabilityRequest) -> Json:
    resp = _execute(
        request,
        {"op": "UpdateAvailability", "content_id": content_id, "node_id": node_id, "available": body.available},
    )
    return _op_result(resp)
