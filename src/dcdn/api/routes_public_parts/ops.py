from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from dcdn.api.errors import ApiError
from dcdn.api.routes_public_parts.common import _execute, _executor, _int_param

router = APIRouter()

Json = Dict[str, Any]


@router.post("/ops")
async def ops_execute(request: Request) -> Json:
    """Execute one wire-form operation.

    Body: {"op": "<Kind>", ...fields}

    Always answers 200 with the tagged response; success and failure share
    the channel and clients branch on "ok"/"kind"/"code".
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ApiError.bad_request("invalid_json", "request body is not valid JSON", {"error": str(e)})

    return _execute(request, body).to_json()


@router.get("/ops/log")
def ops_log(request: Request, limit: Optional[str] = None) -> Json:
    """Most recent operation outcomes, newest first."""
    n = max(1, min(1000, _int_param(limit, 100)))
    return {"ok": True, "entries": _executor(request).op_log(limit=n)}
