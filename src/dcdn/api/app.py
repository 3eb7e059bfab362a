from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dcdn.api.config import load_api_config
from dcdn.api.errors import ApiError
from dcdn.api.routes_public import public_router
from dcdn.api.security import RequestSizeLimitMiddleware
from dcdn.api.structured_logging import RequestLogMiddleware
from dcdn.runtime.executor_boot import build_executor as _build_executor


def build_executor():
    """Build a DcdnExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `dcdn.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return exc.to_response()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): open the SQLite store and attach the executor
      - False: keep lightweight for unit tests; attach app.state.executor yourself
    """
    cfg = load_api_config()

    # Disable docs in production.
    if cfg.mode == "prod":
        app = FastAPI(title="dCDN Registry API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="dCDN Registry API")

    # Attach API config to app.state for routes/middleware that use it.
    app.state.cfg = cfg

    if boot_runtime:
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_exception_handler(ApiError, _api_error_handler)

    # --- Middleware ---
    # Request size limiter should be early to fail fast.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RequestLogMiddleware)

    # CORS (explicit allowlist only by default).
    if cfg.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "OPTIONS"],
            allow_headers=["Content-Type", "X-Request-Id"],
        )

    # --- Routers ---
    app.include_router(public_router)

    return app
