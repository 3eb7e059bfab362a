from __future__ import annotations

import copy

from dcdn.runtime import queries
from dcdn.runtime.apply.availability import content_nodes
from dcdn.runtime.apply.content import get_content_record
from dcdn.runtime.apply.nodes import get_node_record
from dcdn.runtime.domain_apply import apply_op_atomic
from dcdn.runtime.op_types import ContentMetadata, Download, RegisterNode, ReportUsage, RequestCache, Upload


def _upload(st: dict, data: bytes, name: str) -> str:
    meta = ContentMetadata(name=name, size=len(data), content_type="text/plain", owner="o")
    return apply_op_atomic(st, Upload(content=data, metadata=meta), 1)["content_id"]


def test_queries_do_not_mutate_empty_state() -> None:
    st: dict = {}
    assert queries.stats(st) == {"node_count": 0, "total_capacity": 0, "total_data_served": 0, "content_count": 0}
    assert queries.content_exists(st, "x") is False
    assert queries.content_metadata(st, "x") is None
    assert queries.availability(st, "x") == []
    assert queries.node(st, "n") is None
    assert queries.node_performance(st, "n") is None
    assert queries.popular_content(st) == []
    assert st == {}


def test_content_metadata_and_exists() -> None:
    st: dict = {}
    cid = _upload(st, b"abc", "a.txt")

    assert queries.content_exists(st, cid) is True
    meta = queries.content_metadata(st, cid)
    assert meta is not None
    assert meta["id"] == cid
    assert meta["name"] == "a.txt"
    assert meta["content_hash"] == cid


def test_popular_content_orders_by_access_count() -> None:
    st: dict = {}
    a = _upload(st, b"a", "a")
    b = _upload(st, b"b", "b")
    c = _upload(st, b"c", "c")

    for _ in range(3):
        apply_op_atomic(st, Download(content_id=b), 2)
    apply_op_atomic(st, Download(content_id=c), 2)

    items = queries.popular_content(st, 10)
    assert [i["id"] for i in items] == [b, c, a]
    assert items[0]["access_count"] == 3
    assert "content_b64" not in items[0]

    assert [i["id"] for i in queries.popular_content(st, 1)] == [b]
    assert queries.popular_content(st, 0) == []


def test_node_and_performance() -> None:
    st: dict = {}
    cid = _upload(st, b"abc", "a")
    apply_op_atomic(st, RegisterNode(node_id="n1", location="eu", capacity=200), 1)
    apply_op_atomic(st, ReportUsage(node_id="n1", content_id=cid, bytes_served=50), 2)
    apply_op_atomic(st, RequestCache(content_id=cid, node_id="n1"), 3)

    rec = queries.node(st, "n1")
    assert rec is not None
    assert rec["used_capacity"] == 50
    rec["used_capacity"] = 999
    assert st["nodes"]["n1"]["used_capacity"] == 50

    perf = queries.node_performance(st, "n1")
    assert perf == {
        "node_id": "n1",
        "data_served": 50,
        "capacity_utilization": 25.0,
        "reliability_score": 100.0,
    }
    assert queries.availability(st, cid) == ["n1"]


def test_zero_capacity_node_has_zero_utilization() -> None:
    st: dict = {}
    apply_op_atomic(st, RegisterNode(node_id="n0", location="", capacity=0), 1)
    perf = queries.node_performance(st, "n0")
    assert perf is not None
    assert perf["capacity_utilization"] == 0.0


def test_stats_reports_counters_and_content_count() -> None:
    st: dict = {}
    cid = _upload(st, b"abc", "a")
    _upload(st, b"def", "b")
    apply_op_atomic(st, RegisterNode(node_id="n1", location="eu", capacity=10), 1)
    apply_op_atomic(st, ReportUsage(node_id="n1", content_id=cid, bytes_served=4), 2)
    before = copy.deepcopy(st)

    assert queries.stats(st) == {
        "node_count": 1,
        "total_capacity": 10,
        "total_data_served": 4,
        "content_count": 2,
    }
    assert st == before


def test_record_lookups_do_not_create_containers() -> None:
    st: dict = {}
    assert get_content_record(st, "x") is None
    assert get_node_record(st, "n") is None
    assert content_nodes(st, "x") == []
    assert st == {}

    # The projections reuse the same lookups the handlers use.
    assert queries.get_content_record is get_content_record
    assert queries.get_node_record is get_node_record
