from __future__ import annotations

from dataclasses import dataclass
from typing import Any


# Caller-error kinds. Every one is reported synchronously and never retried.
DUPLICATE_CONTENT = "duplicate_content"
CONTENT_NOT_FOUND = "content_not_found"
NODE_NOT_FOUND = "node_not_found"
NODE_ALREADY_REGISTERED = "node_already_registered"
INVALID_OP = "invalid_op"

NOT_FOUND_CODES = frozenset({CONTENT_NOT_FOUND, NODE_NOT_FOUND})
CONFLICT_CODES = frozenset({DUPLICATE_CONTENT, NODE_ALREADY_REGISTERED})


@dataclass
class ApplyError(Exception):
    """Canonical error type for registry apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"
