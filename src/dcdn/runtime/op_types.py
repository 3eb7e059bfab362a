from __future__ import annotations

"""Operation envelopes.

Operations form a closed set: one frozen dataclass per kind. The wire form is a
JSON object carrying the kind under "op" plus the operation fields, with raw
bytes travelling as base64 text under "content_b64":

  {"op": "Upload", "content_b64": "SGVsbG8=", "metadata": {...}}
  {"op": "RegisterNode", "node_id": "n1", "location": "eu-west", "capacity": 1024}

operation_from_json() is the only place untyped input is inspected; past it,
everything is routed by class.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, Union

from dcdn.runtime.errors import INVALID_OP, ApplyError

Json = Dict[str, Any]


def _bad(reason: str, **details: Any) -> ApplyError:
    return ApplyError(INVALID_OP, reason, details or None)


def _req_str(j: Json, key: str) -> str:
    # Ids are opaque: returned exactly as sent, empty and padded strings included.
    v = j.get(key)
    if not isinstance(v, str):
        raise _bad(f"missing_{key}", field=key)
    return v


def _req_uint(j: Json, key: str) -> int:
    v = j.get(key)
    # bool is an int subclass; reject it explicitly.
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise _bad(f"invalid_{key}", field=key, value=v)
    return int(v)


def _opt_uint(j: Json, key: str) -> Optional[int]:
    if j.get(key) is None:
        return None
    return _req_uint(j, key)


@dataclass(frozen=True)
class ContentMetadata:
    name: str
    size: int
    content_type: str
    owner: str
    created_at: int = 0
    expires_at: Optional[int] = None
    # Hash of the content for integrity verification; stamped on upload.
    content_hash: Optional[str] = None

    @staticmethod
    def from_json(j: Any) -> "ContentMetadata":
        if isinstance(j, ContentMetadata):
            return j
        if not isinstance(j, dict):
            raise _bad("metadata_not_object")
        name = j.get("name")
        content_type = j.get("content_type")
        owner = j.get("owner")
        for key, v in (("name", name), ("content_type", content_type), ("owner", owner)):
            if not isinstance(v, str):
                raise _bad(f"invalid_metadata_{key}", field=key)
        h = j.get("content_hash")
        if h is not None and not isinstance(h, str):
            raise _bad("invalid_metadata_content_hash", field="content_hash")
        return ContentMetadata(
            name=str(name),
            size=_req_uint(j, "size"),
            content_type=str(content_type),
            owner=str(owner),
            created_at=_opt_uint(j, "created_at") or 0,
            expires_at=_opt_uint(j, "expires_at"),
            content_hash=h,
        )

    def to_json(self) -> Json:
        return {
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "owner": self.owner,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "content_hash": self.content_hash,
        }


# ---------------------------------------------------------------------------
# Operation variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Upload:
    KIND = "Upload"

    content: bytes
    metadata: ContentMetadata

    def to_json(self) -> Json:
        return {
            "op": self.KIND,
            "content_b64": base64.b64encode(self.content).decode("ascii"),
            "metadata": self.metadata.to_json(),
        }


@dataclass(frozen=True)
class Download:
    KIND = "Download"

    content_id: str

    def to_json(self) -> Json:
        return {"op": self.KIND, "content_id": self.content_id}


@dataclass(frozen=True)
class RequestCache:
    KIND = "RequestCache"

    content_id: str
    node_id: str

    def to_json(self) -> Json:
        return {"op": self.KIND, "content_id": self.content_id, "node_id": self.node_id}


@dataclass(frozen=True)
class UpdateAvailability:
    KIND = "UpdateAvailability"

    content_id: str
    node_id: str
    available: bool

    def to_json(self) -> Json:
        return {
            "op": self.KIND,
            "content_id": self.content_id,
            "node_id": self.node_id,
            "available": self.available,
        }


@dataclass(frozen=True)
class RegisterNode:
    KIND = "RegisterNode"

    node_id: str
    location: str
    capacity: int

    def to_json(self) -> Json:
        return {"op": self.KIND, "node_id": self.node_id, "location": self.location, "capacity": self.capacity}


@dataclass(frozen=True)
class ReportUsage:
    KIND = "ReportUsage"

    node_id: str
    content_id: str
    bytes_served: int

    def to_json(self) -> Json:
        return {
            "op": self.KIND,
            "node_id": self.node_id,
            "content_id": self.content_id,
            "bytes_served": self.bytes_served,
        }


@dataclass(frozen=True)
class UpdateMetadata:
    KIND = "UpdateMetadata"

    content_id: str
    metadata: ContentMetadata

    def to_json(self) -> Json:
        return {"op": self.KIND, "content_id": self.content_id, "metadata": self.metadata.to_json()}


Operation = Union[Upload, Download, RequestCache, UpdateAvailability, RegisterNode, ReportUsage, UpdateMetadata]

OPERATION_TYPES: tuple[Type[Any], ...] = (
    Upload,
    Download,
    RequestCache,
    UpdateAvailability,
    RegisterNode,
    ReportUsage,
    UpdateMetadata,
)

_BY_KIND: Dict[str, Type[Any]] = {t.KIND: t for t in OPERATION_TYPES}


def decode_content_b64(raw: Any) -> bytes:
    if not isinstance(raw, str):
        raise _bad("missing_content_b64", field="content_b64")
    try:
        return base64.b64decode(raw.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise _bad("invalid_content_b64", field="content_b64", error=str(e)) from e


def operation_from_json(j: Any) -> Operation:
    """Parse a wire-form operation into its typed variant."""
    if isinstance(j, OPERATION_TYPES):
        return j  # type: ignore[return-value]
    if not isinstance(j, dict):
        raise _bad("op_not_object")

    kind = str(j.get("op") or "").strip()
    cls = _BY_KIND.get(kind)
    if cls is None:
        raise _bad("unknown_op", op=kind)

    if cls is Upload:
        return Upload(content=decode_content_b64(j.get("content_b64")), metadata=ContentMetadata.from_json(j.get("metadata")))
    if cls is Download:
        return Download(content_id=_req_str(j, "content_id"))
    if cls is RequestCache:
        return RequestCache(content_id=_req_str(j, "content_id"), node_id=_req_str(j, "node_id"))
    if cls is UpdateAvailability:
        available = j.get("available")
        if not isinstance(available, bool):
            raise _bad("invalid_available", field="available", value=available)
        return UpdateAvailability(
            content_id=_req_str(j, "content_id"),
            node_id=_req_str(j, "node_id"),
            available=available,
        )
    if cls is RegisterNode:
        location = j.get("location")
        if not isinstance(location, str):
            raise _bad("invalid_location", field="location")
        return RegisterNode(node_id=_req_str(j, "node_id"), location=location, capacity=_req_uint(j, "capacity"))
    if cls is ReportUsage:
        return ReportUsage(
            node_id=_req_str(j, "node_id"),
            content_id=_req_str(j, "content_id"),
            bytes_served=_req_uint(j, "bytes_served"),
        )
    return UpdateMetadata(content_id=_req_str(j, "content_id"), metadata=ContentMetadata.from_json(j.get("metadata")))


__all__ = [
    "ContentMetadata",
    "Download",
    "OPERATION_TYPES",
    "Operation",
    "RegisterNode",
    "ReportUsage",
    "RequestCache",
    "UpdateAvailability",
    "UpdateMetadata",
    "Upload",
    "decode_content_b64",
    "operation_from_json",
]
