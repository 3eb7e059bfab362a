# src/dcdn/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Registry state is a nested JSON-like dict mutated by the apply/* modules:

  content       content_id -> ContentRecord (metadata + access bookkeeping)
  payloads      content_id -> base64 payload (immutable; may be a read-only view)
  nodes         node_id -> NodeRecord
  availability  content_id -> [node_id, ...]   (key absent until first created)
  counters      node_count / total_capacity / total_data_served
  params        instance params (instance_id, ...)
  seq           number of operations applied so far

ensure_state() creates any missing container and fails closed on containers of
the wrong type. It never touches existing entries.
"""

from collections.abc import Mapping, MutableMapping
from typing import Any, Dict

Json = Dict[str, Any]

COUNTER_KEYS = ("node_count", "total_capacity", "total_data_served")

_KEYED_CONTAINERS = ("content", "payloads", "nodes", "availability", "params")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains the registry containers.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st is not a MutableMapping or a container has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _KEYED_CONTAINERS:
        cur = st.get(key)
        if cur is None:
            st[key] = {}
        elif not isinstance(cur, Mapping):
            raise TypeError(f"state[{key!r}] must be a mapping, got {type(cur)}")

    counters = st.get("counters")
    if counters is None:
        counters = {}
        st["counters"] = counters
    elif not isinstance(counters, dict):
        raise TypeError(f"state['counters'] must be dict, got {type(counters)}")
    for key in COUNTER_KEYS:
        if not isinstance(counters.get(key), int):
            counters[key] = int(counters.get(key) or 0)

    if not isinstance(st.get("seq"), int):
        st["seq"] = int(st.get("seq") or 0)

    return st  # type: ignore[return-value]


def counters(st: Json) -> Json:
    return ensure_state(st)["counters"]


__all__ = ["COUNTER_KEYS", "counters", "ensure_state"]
