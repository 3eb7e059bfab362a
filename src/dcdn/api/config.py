import os
from dataclasses import dataclass
from typing import List


DEFAULT_MAX_REQUEST_BYTES = 16 * 1024 * 1024


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "prod" | "dev"
    max_request_bytes: int
    cors_origins: List[str]


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        return int(raw.strip())
    except ValueError:
        return int(default)


def _is_truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def parse_cors_origins(raw: str | None, *, mode: str) -> List[str]:
    """Parse CORS origins with production-safe defaults.

    Policy:
      - unset/empty -> CORS disabled
      - wildcard "*" is rejected in prod mode
    """
    raw = (raw or "").strip()
    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in DCDN_CORS_ORIGINS."
            )
        return ["*"]
    return origins


def load_api_config() -> ApiConfig:
    mode = os.getenv("DCDN_MODE", "prod").strip().lower()
    return ApiConfig(
        mode=mode,
        max_request_bytes=_env_int("DCDN_MAX_REQUEST_BYTES", DEFAULT_MAX_REQUEST_BYTES),
        cors_origins=parse_cors_origins(os.getenv("DCDN_CORS_ORIGINS"), mode=mode),
    )


def log_requests_enabled() -> bool:
    raw = os.environ.get("DCDN_LOG_REQUESTS")
    if raw is None:
        return True
    return _is_truthy(raw)
