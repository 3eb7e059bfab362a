# src/dcdn/runtime/working_state.py
from __future__ import annotations

"""Copy-on-write view of registry state for applying one operation.

Apply handlers mutate plain mappings. Instead of deep-copying the whole
registry per operation, each keyed container is wrapped in an OverlayMap:
entries are copied on first read, writes land in the overlay, and the base
is untouched until merge_into(). changes() lists exactly the entries that
differ from the base, which is what the SQLite store persists.

Payloads are immutable once stored, so the payload overlay never copies on
read and its base may be a read-only Mapping backed by the database.
"""

import copy
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List

from dcdn.runtime.state_invariants import ensure_state

Json = Dict[str, Any]

KEYED_CONTAINERS = ("content", "payloads", "nodes", "availability")


class OverlayMap(MutableMapping):
    def __init__(self, base: Mapping, *, copy_on_read: bool = True) -> None:
        self._base = base
        self._local: Dict[str, Any] = {}
        self._copy_on_read = copy_on_read

    def __getitem__(self, key: str) -> Any:
        if key in self._local:
            return self._local[key]
        value = self._base[key]
        if self._copy_on_read:
            value = copy.deepcopy(value)
            self._local[key] = value
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self._local[key] = value

    def __delitem__(self, key: str) -> None:
        raise TypeError("registry entries are never deleted")

    def __contains__(self, key: object) -> bool:
        return key in self._local or key in self._base

    def __iter__(self) -> Iterator[str]:
        yield from self._base
        for key in self._local:
            if key not in self._base:
                yield key

    def __len__(self) -> int:
        return len(self._base) + sum(1 for key in self._local if key not in self._base)

    def changed(self) -> Json:
        """Entries written (or mutated after a read) that differ from the base."""
        out: Json = {}
        for key, value in self._local.items():
            if key not in self._base or self._base[key] != value:
                out[key] = value
        return out


@dataclass
class RegistryChanges:
    """Rows touched by one operation, keyed by table."""

    content: Json = field(default_factory=dict)
    payloads: Dict[str, str] = field(default_factory=dict)
    nodes: Json = field(default_factory=dict)
    availability: Dict[str, List[str]] = field(default_factory=dict)
    counters: Json = field(default_factory=dict)
    seq: int = 0


class WorkingState:
    def __init__(self, base: Json) -> None:
        self._base = base
        self._overlays: Dict[str, OverlayMap] = {}
        for key in KEYED_CONTAINERS:
            cur = base.get(key)
            if cur is None:
                cur = {}
            elif not isinstance(cur, Mapping):
                raise TypeError(f"state[{key!r}] must be a mapping, got {type(cur)}")
            self._overlays[key] = OverlayMap(cur, copy_on_read=(key != "payloads"))

        view: Json = dict(self._overlays)
        view["counters"] = dict(base.get("counters") or {})
        view["params"] = dict(base.get("params") or {})
        view["seq"] = base.get("seq") or 0
        self.view = ensure_state(view)
        self._changes: RegistryChanges | None = None

    def changes(self) -> RegistryChanges:
        if self._changes is None:
            self._changes = RegistryChanges(
                content=self._overlays["content"].changed(),
                payloads=self._overlays["payloads"].changed(),
                nodes=self._overlays["nodes"].changed(),
                availability=self._overlays["availability"].changed(),
                counters=dict(self.view["counters"]),
                seq=int(self.view["seq"]),
            )
        return self._changes

    def merge_into(self) -> None:
        """Fold the changes into the base state.

        Read-only bases (the database-backed payload view) are skipped; their
        rows are already durable once the store commit returned.
        """
        ch = self.changes()
        for key, rows in (
            ("content", ch.content),
            ("payloads", ch.payloads),
            ("nodes", ch.nodes),
            ("availability", ch.availability),
        ):
            target = self._base.get(key)
            if target is None:
                target = {}
                self._base[key] = target
            if isinstance(target, MutableMapping):
                target.update(rows)
        self._base["counters"] = ch.counters
        self._base["params"] = self.view["params"]
        self._base["seq"] = ch.seq


__all__ = ["KEYED_CONTAINERS", "OverlayMap", "RegistryChanges", "WorkingState"]
