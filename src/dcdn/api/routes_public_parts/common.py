from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import Request

from dcdn.api.errors import ApiError
from dcdn.runtime.responses import ErrorResponse, OpResponse

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _query(request: Request, fn: Callable[..., Any], *args: Any) -> Any:
    """Run a read-only projection from dcdn.runtime.queries against live state."""
    return _executor(request).query(fn, *args)


def _execute(request: Request, op: Any) -> OpResponse:
    return _executor(request).execute(op)


def _op_result(resp: OpResponse) -> Json:
    """Unwrap a tagged response for resource-style routes; errors become ApiError."""
    if isinstance(resp, ErrorResponse):
        raise ApiError.from_op_error(resp.code, resp.message)
    return resp.to_json()


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        s = str(v).strip()
        if s == "":
            return int(default)
        return int(s)
    except ValueError:
        return int(default)
