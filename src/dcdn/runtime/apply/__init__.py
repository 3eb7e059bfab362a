"""Domain-specific apply modules.

Each module owns one slice of registry state and exposes a HANDLERS table
mapping operation classes to apply functions. domain_dispatch.py merges the
tables; every operation class is claimed by exactly one module.

NOTE: Keep this package import-safe (no imports of domain_dispatch).
"""

from __future__ import annotations

__all__ = [
    "availability",
    "content",
    "nodes",
]
