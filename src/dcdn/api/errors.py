from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from dcdn.runtime.errors import CONFLICT_CODES, NOT_FOUND_CODES, INVALID_OP


@dataclass(eq=False)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_op_error(code: str, message: str) -> "ApiError":
        """Map a registry error code onto an HTTP status."""
        if code in NOT_FOUND_CODES:
            return ApiError.not_found(code, message)
        if code in CONFLICT_CODES:
            return ApiError.conflict(code, message)
        if code == INVALID_OP:
            return ApiError.bad_request(code, message)
        return ApiError.internal(code, message)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={
                "ok": False,
                "error": {"code": self.code, "message": self.message, "details": self.details},
            },
        )
