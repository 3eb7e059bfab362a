"""Pydantic request schemas for the public API.

These exist only for HTTP input validation. The operation types the registry
executes live in dcdn.runtime.op_types; routes translate these models into them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ContentMetadataIn(BaseModel):
    name: str = Field(..., description="Display name, e.g. hello.txt")
    size: int = Field(..., ge=0, description="Payload size in bytes")
    content_type: str = Field(..., description="MIME type")
    owner: str = Field(..., description="Owner id")
    created_at: int = Field(default=0, ge=0, description="Client-side creation timestamp")
    expires_at: Optional[int] = Field(default=None, ge=0, description="Optional expiry timestamp")
    content_hash: Optional[str] = Field(default=None, description="Echoed content id (stamped on upload)")

    def to_op_json(self) -> Dict[str, Any]:
        return self.model_dump()


class UploadRequest(BaseModel):
    content_b64: str = Field(..., description="Raw bytes, base64 encoded")
    metadata: ContentMetadataIn


class RegisterNodeRequest(BaseModel):
    node_id: str = Field(..., description="Opaque node id, stored as sent")
    location: str = Field(default="", description="Free-form location label")
    capacity: int = Field(..., ge=0, description="Capacity in bytes")


class ReportUsageRequest(BaseModel):
    content_id: str = Field(..., description="Content id (sha256 hex)")
    bytes_served: int = Field(..., ge=0)


class RequestCacheRequest(BaseModel):
    node_id: str = Field(..., description="Opaque node id, stored as sent")


class AvailabilityRequest(BaseModel):
    available: bool = Field(..., description="True records the node as holding the content")
