# src/dcdn/runtime/apply/content.py
from __future__ import annotations

"""dcdn.runtime.apply.content

Content registry apply semantics.

Key invariants:
  - content_id == sha256(bytes).hexdigest() (fixed-width lowercase hex)
  - one record per unique hash; a second upload of identical bytes is rejected
  - the payload is immutable and lives in state["payloads"], apart from the
    record; only metadata and access bookkeeping change on the record
  - records are never deleted here
"""

import base64
from collections.abc import Mapping
from hashlib import sha256
from typing import Any, Callable, Dict

from dcdn.runtime.errors import CONTENT_NOT_FOUND, DUPLICATE_CONTENT, ApplyError
from dcdn.runtime.op_types import ContentMetadata, Download, UpdateMetadata, Upload
from dcdn.runtime.state_invariants import ensure_state

Json = Dict[str, Any]


def content_id_for(data: bytes) -> str:
    """Content address of a payload."""
    return sha256(bytes(data)).hexdigest()


def _content(state: Json) -> Json:
    return ensure_state(state)["content"]


def get_content_record(state: Json, content_id: str) -> Json | None:
    """Record for content_id, or None. Does not touch `state`."""
    table = state.get("content")
    if not isinstance(table, Mapping):
        return None
    rec = table.get(content_id)
    return rec if isinstance(rec, dict) else None


def content_exists(state: Json, content_id: str) -> bool:
    return get_content_record(state, content_id) is not None


def content_bytes(state: Json, content_id: str) -> bytes:
    payloads = state.get("payloads")
    raw = payloads.get(content_id) if isinstance(payloads, Mapping) else None
    if not isinstance(raw, str):
        raise RuntimeError(f"payload missing for stored content {content_id}")
    return base64.b64decode(raw.encode("ascii"))


def require_content(state: Json, content_id: str, *, reason: str = "Content not found") -> Json:
    rec = get_content_record(state, content_id)
    if rec is None:
        raise ApplyError(CONTENT_NOT_FOUND, reason, {"content_id": content_id})
    return rec


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _apply_upload(state: Json, op: Upload, now_us: int) -> Json:
    content_id = content_id_for(op.content)

    if content_exists(state, content_id):
        raise ApplyError(
            DUPLICATE_CONTENT,
            "Content with this hash already exists",
            {"content_id": content_id},
        )

    meta = op.metadata.to_json()
    meta["content_hash"] = content_id

    st = ensure_state(state)
    st["payloads"][content_id] = base64.b64encode(op.content).decode("ascii")
    st["content"][content_id] = {
        "id": content_id,
        "metadata": meta,
        "created_at": int(now_us),
        "last_accessed": int(now_us),
        "access_count": 0,
    }
    return {"applied": Upload.KIND, "content_id": content_id}


def _apply_download(state: Json, op: Download, now_us: int) -> Json:
    rec = require_content(state, op.content_id)
    data = content_bytes(state, op.content_id)

    # Access bookkeeping happens on every download.
    rec["last_accessed"] = int(now_us)
    rec["access_count"] = int(rec.get("access_count") or 0) + 1
    _content(state)[op.content_id] = rec

    return {"applied": Download.KIND, "content_id": op.content_id, "content": data}


def _apply_update_metadata(state: Json, op: UpdateMetadata, now_us: int) -> Json:
    rec = require_content(state, op.content_id)

    # Wholesale replacement; payload, created_at and access_count are untouched.
    rec["metadata"] = ContentMetadata.from_json(op.metadata).to_json()
    _content(state)[op.content_id] = rec
    return {"applied": UpdateMetadata.KIND, "content_id": op.content_id}


HANDLERS: Dict[type, Callable[[Json, Any, int], Json]] = {
    Upload: _apply_upload,
    Download: _apply_download,
    UpdateMetadata: _apply_update_metadata,
}

__all__ = [
    "HANDLERS",
    "content_bytes",
    "content_exists",
    "content_id_for",
    "get_content_record",
    "require_content",
]
