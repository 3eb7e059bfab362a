from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from dcdn.api.config import DEFAULT_MAX_REQUEST_BYTES


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Fail-fast request size limiter.

    - Enforces Content-Length when present.
    - Also caps the buffered body size for mutating requests (protects against
      chunked uploads without a Content-Length).

    The limit comes from app.state.cfg.max_request_bytes (DCDN_MAX_REQUEST_BYTES)
    unless max_bytes is given explicitly.
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        self._max_bytes = max_bytes
        self._exempt_prefixes = exempt_prefixes

    def _limit(self, request: Request) -> int:
        if self._max_bytes is not None:
            return int(self._max_bytes)
        cfg = getattr(request.app.state, "cfg", None)
        return int(getattr(cfg, "max_request_bytes", DEFAULT_MAX_REQUEST_BYTES))

    def _too_large(self) -> JSONResponse:
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": {"code": "request_too_large", "message": "Request body too large"},
            },
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path or ""
        for ex in self._exempt_prefixes:
            if path.startswith(ex):
                return await call_next(request)

        limit = self._limit(request)

        cl = request.headers.get("content-length")
        if cl:
            try:
                if int(cl) > limit:
                    return self._too_large()
            except ValueError:
                # Malformed header; fall back to buffered body cap.
                pass

        if (request.method or "").upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if body and len(body) > limit:
                return self._too_large()

        return await call_next(request)
