# src/dcdn/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from dcdn.api.routes_public_parts.content import router as content_router
from dcdn.api.routes_public_parts.health import router as health_router
from dcdn.api.routes_public_parts.metrics import router as metrics_router
from dcdn.api.routes_public_parts.nodes import router as nodes_router
from dcdn.api.routes_public_parts.ops import router as ops_router
from dcdn.api.routes_public_parts.stats import router as stats_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(ops_router, prefix="/v1", tags=["ops"])
public_router.include_router(content_router, prefix="/v1", tags=["content"])
public_router.include_router(nodes_router, prefix="/v1", tags=["nodes"])
public_router.include_router(stats_router, prefix="/v1", tags=["stats"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
