from __future__ import annotations

import copy

import pytest

from dcdn.runtime.domain_apply import ApplyError, apply_op_atomic, execute_op
from dcdn.runtime.op_types import ContentMetadata, RegisterNode, RequestCache, UpdateAvailability, Upload
from dcdn.runtime.responses import CacheRequestAccepted, NodeRegistered


def _seed() -> tuple[dict, str]:
    st: dict = {}
    meta = ContentMetadata(name="f", size=4, content_type="text/plain", owner="o")
    cid = apply_op_atomic(st, Upload(content=b"data", metadata=meta), 1)["content_id"]
    apply_op_atomic(st, RegisterNode(node_id="n1", location="a", capacity=10), 1)
    apply_op_atomic(st, RegisterNode(node_id="n2", location="b", capacity=10), 1)
    return st, cid


def test_request_cache_is_idempotent() -> None:
    st, cid = _seed()
    first = apply_op_atomic(st, RequestCache(content_id=cid, node_id="n1"), 2)
    second = apply_op_atomic(st, RequestCache(content_id=cid, node_id="n1"), 3)

    assert first["deduped"] is False
    assert second["deduped"] is True
    assert st["availability"][cid] == ["n1"]


def test_request_cache_checks_content_before_node() -> None:
    st, cid = _seed()

    with pytest.raises(ApplyError) as e:
        apply_op_atomic(st, RequestCache(content_id="missing", node_id="ghost"), 2)
    assert e.value.code == "content_not_found"
    assert e.value.reason == "Content does not exist"

    before = copy.deepcopy(st)
    with pytest.raises(ApplyError) as e:
        apply_op_atomic(st, RequestCache(content_id=cid, node_id="ghost"), 2)
    assert e.value.code == "node_not_found"
    assert st == before


def test_update_availability_adds_and_removes() -> None:
    st, cid = _seed()
    apply_op_atomic(st, RequestCache(content_id=cid, node_id="n1"), 2)

    apply_op_atomic(st, UpdateAvailability(content_id=cid, node_id="n2", available=True), 3)
    apply_op_atomic(st, UpdateAvailability(content_id=cid, node_id="n2", available=True), 3)
    assert sorted(st["availability"][cid]) == ["n1", "n2"]

    apply_op_atomic(st, UpdateAvailability(content_id=cid, node_id="n1", available=False), 4)
    assert st["availability"][cid] == ["n2"]

    # Removing a node that is not listed is a no-op.
    apply_op_atomic(st, UpdateAvailability(content_id=cid, node_id="n1", available=False), 5)
    assert st["availability"][cid] == ["n2"]


def test_update_availability_validates_neither_side() -> None:
    st: dict = {}
    apply_op_atomic(st, UpdateAvailability(content_id="nobody-uploaded", node_id="nobody", available=True), 1)
    assert st["availability"]["nobody-uploaded"] == ["nobody"]


def test_update_availability_accepts_empty_and_padded_ids() -> None:
    st: dict = {}
    resp = execute_op(st, {"op": "UpdateAvailability", "content_id": "", "node_id": "n", "available": True}, 1)
    assert resp == CacheRequestAccepted()
    assert st["availability"][""] == ["n"]

    resp = execute_op(st, {"op": "UpdateAvailability", "content_id": "c", "node_id": " n ", "available": True}, 2)
    assert resp == CacheRequestAccepted()
    execute_op(st, {"op": "UpdateAvailability", "content_id": "c", "node_id": "n", "available": True}, 3)
    assert st["availability"]["c"] == [" n ", "n"]


def test_padded_node_id_is_a_distinct_node() -> None:
    st: dict = {}
    assert execute_op(st, {"op": "RegisterNode", "node_id": "n1", "location": "a", "capacity": 10}, 1) == NodeRegistered()
    assert execute_op(st, {"op": "RegisterNode", "node_id": " n1 ", "location": "a", "capacity": 5}, 2) == NodeRegistered()

    assert sorted(st["nodes"]) == [" n1 ", "n1"]
    assert st["nodes"][" n1 "]["id"] == " n1 "
    assert st["counters"]["node_count"] == 2
    assert st["counters"]["total_capacity"] == 15


def test_update_availability_false_without_entry_creates_nothing() -> None:
    st: dict = {}
    apply_op_atomic(st, UpdateAvailability(content_id="c", node_id="n", available=False), 1)
    assert "c" not in st["availability"]
    # The operation still counts as applied.
    assert st["seq"] == 1
