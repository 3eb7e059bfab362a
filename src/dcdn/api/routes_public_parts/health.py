from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


@router.get("/health")
def health() -> dict[str, Any]:
    """Liveness: the process is up and serving HTTP."""
    return {"ok": True, "ts_ms": _now_ms()}


@router.get("/readyz")
def readyz(request: Request) -> dict[str, Any]:
    """Readiness check.

    Policy:
      - must never crash
      - ok=true only once an executor is attached
    """
    ex: Any = getattr(request.app.state, "executor", None)
    if ex is None:
        return {"ok": False, "reason": "executor_not_attached", "ts_ms": _now_ms()}

    return {
        "ok": True,
        "instance_id": str(getattr(ex, "instance_id", "") or ""),
        "ts_ms": _now_ms(),
    }
