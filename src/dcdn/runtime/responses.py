from __future__ import annotations

"""Tagged operation responses.

Success and failure share one channel. Every response serializes to
{"ok": bool, "kind": "<Variant>", ...payload}; the error variant carries the
error code (so clients can branch on it) and a short human-readable message.
"""

import base64
from dataclasses import dataclass
from typing import Any, Dict, Union

from dcdn.runtime.errors import ApplyError
from dcdn.runtime.op_types import (
    Download,
    RegisterNode,
    ReportUsage,
    RequestCache,
    UpdateAvailability,
    UpdateMetadata,
    Upload,
)

Json = Dict[str, Any]


@dataclass(frozen=True)
class UploadSuccess:
    content_id: str

    ok = True

    def to_json(self) -> Json:
        return {"ok": True, "kind": "UploadSuccess", "content_id": self.content_id}


@dataclass(frozen=True)
class DownloadSuccess:
    content: bytes

    ok = True

    def to_json(self) -> Json:
        return {
            "ok": True,
            "kind": "DownloadSuccess",
            "content_b64": base64.b64encode(self.content).decode("ascii"),
        }


@dataclass(frozen=True)
class CacheRequestAccepted:
    ok = True

    def to_json(self) -> Json:
        return {"ok": True, "kind": "CacheRequestAccepted"}


@dataclass(frozen=True)
class NodeRegistered:
    ok = True

    def to_json(self) -> Json:
        return {"ok": True, "kind": "NodeRegistered"}


@dataclass(frozen=True)
class UsageReported:
    ok = True

    def to_json(self) -> Json:
        return {"ok": True, "kind": "UsageReported"}


@dataclass(frozen=True)
class MetadataUpdated:
    ok = True

    def to_json(self) -> Json:
        return {"ok": True, "kind": "MetadataUpdated"}


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str

    ok = False

    @staticmethod
    def from_apply_error(e: ApplyError) -> "ErrorResponse":
        return ErrorResponse(code=str(e.code), message=str(e.reason))

    def to_json(self) -> Json:
        return {"ok": False, "kind": "Error", "code": self.code, "message": self.message}


OpResponse = Union[
    UploadSuccess,
    DownloadSuccess,
    CacheRequestAccepted,
    NodeRegistered,
    UsageReported,
    MetadataUpdated,
    ErrorResponse,
]


def success_response(op: Any, meta: Json) -> OpResponse:
    """Translate the applied-meta of a successful operation into its variant."""
    if isinstance(op, Upload):
        return UploadSuccess(content_id=str(meta["content_id"]))
    if isinstance(op, Download):
        return DownloadSuccess(content=bytes(meta["content"]))
    # Both availability operations acknowledge with the same variant.
    if isinstance(op, (RequestCache, UpdateAvailability)):
        return CacheRequestAccepted()
    if isinstance(op, RegisterNode):
        return NodeRegistered()
    if isinstance(op, ReportUsage):
        return UsageReported()
    if isinstance(op, UpdateMetadata):
        return MetadataUpdated()
    raise TypeError(f"no response variant for {type(op).__name__}")


__all__ = [
    "CacheRequestAccepted",
    "DownloadSuccess",
    "ErrorResponse",
    "MetadataUpdated",
    "NodeRegistered",
    "OpResponse",
    "UploadSuccess",
    "UsageReported",
    "success_response",
]
