from __future__ import annotations

import base64

import pytest

from dcdn.runtime.errors import ApplyError
from dcdn.runtime.op_types import (
    ContentMetadata,
    Download,
    RegisterNode,
    ReportUsage,
    UpdateAvailability,
    UpdateMetadata,
    Upload,
    operation_from_json,
)


def _meta_json(**kw):
    base = {"name": "hello.txt", "size": 12, "content_type": "text/plain", "owner": "alice"}
    base.update(kw)
    return base


def test_upload_decodes_base64_payload() -> None:
    op = operation_from_json(
        {"op": "Upload", "content_b64": base64.b64encode(b"abc").decode("ascii"), "metadata": _meta_json(size=3)}
    )
    assert isinstance(op, Upload)
    assert op.content == b"abc"
    assert op.metadata.size == 3
    assert op.metadata.created_at == 0
    assert op.metadata.expires_at is None


def test_typed_operations_pass_through_unchanged() -> None:
    op = Download(content_id="abc")
    assert operation_from_json(op) is op


def test_unknown_op_is_rejected() -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "Delete", "content_id": "x"})
    assert e.value.code == "invalid_op"
    assert e.value.reason == "unknown_op"


def test_non_object_op_is_rejected() -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json(["Upload"])
    assert e.value.reason == "op_not_object"


def test_invalid_base64_is_rejected() -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "Upload", "content_b64": "***", "metadata": _meta_json()})
    assert e.value.reason == "invalid_content_b64"


@pytest.mark.parametrize("capacity", [-1, True, "10", None])
def test_register_node_requires_unsigned_capacity(capacity) -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "RegisterNode", "node_id": "n1", "location": "eu", "capacity": capacity})
    assert e.value.reason == "invalid_capacity"


def test_register_node_allows_empty_location() -> None:
    op = operation_from_json({"op": "RegisterNode", "node_id": "n1", "location": "", "capacity": 0})
    assert op == RegisterNode(node_id="n1", location="", capacity=0)


def test_report_usage_requires_node_id() -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "ReportUsage", "content_id": "c", "bytes_served": 1})
    assert e.value.reason == "missing_node_id"

    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "ReportUsage", "node_id": 7, "content_id": "c", "bytes_served": 1})
    assert e.value.reason == "missing_node_id"

    op = operation_from_json({"op": "ReportUsage", "node_id": "n1", "content_id": "c", "bytes_served": 0})
    assert op == ReportUsage(node_id="n1", content_id="c", bytes_served=0)


@pytest.mark.parametrize("raw", ["", " ", " n1 ", "n1\t"])
def test_ids_are_kept_verbatim(raw: str) -> None:
    op = operation_from_json({"op": "RegisterNode", "node_id": raw, "location": "eu", "capacity": 1})
    assert op.node_id == raw

    op = operation_from_json({"op": "UpdateAvailability", "content_id": raw, "node_id": raw, "available": True})
    assert op == UpdateAvailability(content_id=raw, node_id=raw, available=True)

    op = operation_from_json({"op": "Download", "content_id": raw})
    assert op == Download(content_id=raw)


def test_update_availability_requires_bool() -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "UpdateAvailability", "content_id": "c", "node_id": "n", "available": 1})
    assert e.value.reason == "invalid_available"

    op = operation_from_json({"op": "UpdateAvailability", "content_id": "c", "node_id": "n", "available": False})
    assert op == UpdateAvailability(content_id="c", node_id="n", available=False)


def test_metadata_fields_are_validated() -> None:
    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "UpdateMetadata", "content_id": "c", "metadata": _meta_json(owner=7)})
    assert e.value.reason == "invalid_metadata_owner"

    with pytest.raises(ApplyError) as e:
        operation_from_json({"op": "UpdateMetadata", "content_id": "c", "metadata": "nope"})
    assert e.value.reason == "metadata_not_object"


def test_wire_form_matches_parser() -> None:
    meta = ContentMetadata(name="a", size=1, content_type="x/y", owner="o", expires_at=99)
    for op in (
        Upload(content=b"\x00\x01", metadata=meta),
        UpdateMetadata(content_id="c", metadata=meta),
        RegisterNode(node_id="n", location="us", capacity=5),
    ):
        assert operation_from_json(op.to_json()) == op
