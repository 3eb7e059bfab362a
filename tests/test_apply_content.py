from __future__ import annotations

import base64
import copy
import hashlib

import pytest

from dcdn.runtime.domain_apply import ApplyError, apply_op_atomic
from dcdn.runtime.op_types import ContentMetadata, Download, UpdateMetadata, Upload


def _meta(**kw) -> ContentMetadata:
    base = {"name": "hello.txt", "size": 12, "content_type": "text/plain", "owner": "alice"}
    base.update(kw)
    return ContentMetadata(**base)


def test_upload_is_content_addressed_and_stamps_hash() -> None:
    st: dict = {}
    data = b"Hello, dCDN!"
    meta = apply_op_atomic(st, Upload(content=data, metadata=_meta()), 1_000)

    cid = hashlib.sha256(data).hexdigest()
    assert meta["content_id"] == cid
    assert len(cid) == 64

    rec = st["content"][cid]
    assert rec["id"] == cid
    assert rec["metadata"]["content_hash"] == cid
    assert rec["created_at"] == 1_000
    assert rec["last_accessed"] == 1_000
    assert rec["access_count"] == 0
    assert st["seq"] == 1


def test_duplicate_upload_is_rejected_and_state_unchanged() -> None:
    st: dict = {}
    apply_op_atomic(st, Upload(content=b"same", metadata=_meta(name="a")), 1)
    before = copy.deepcopy(st)

    with pytest.raises(ApplyError) as e:
        apply_op_atomic(st, Upload(content=b"same", metadata=_meta(name="b")), 2)

    assert e.value.code == "duplicate_content"
    assert e.value.reason == "Content with this hash already exists"
    assert st == before
    assert len(st["content"]) == 1


def test_empty_payload_is_valid_content() -> None:
    st: dict = {}
    meta = apply_op_atomic(st, Upload(content=b"", metadata=_meta(size=0)), 1)
    assert meta["content_id"] == hashlib.sha256(b"").hexdigest()


def test_download_returns_bytes_and_records_access() -> None:
    st: dict = {}
    data = b"payload bytes"
    cid = apply_op_atomic(st, Upload(content=data, metadata=_meta()), 10)["content_id"]

    out = apply_op_atomic(st, Download(content_id=cid), 20)
    assert out["content"] == data
    assert st["content"][cid]["access_count"] == 1
    assert st["content"][cid]["last_accessed"] == 20

    apply_op_atomic(st, Download(content_id=cid), 30)
    assert st["content"][cid]["access_count"] == 2
    assert st["content"][cid]["last_accessed"] == 30
    assert st["content"][cid]["created_at"] == 10


def test_download_unknown_content() -> None:
    with pytest.raises(ApplyError) as e:
        apply_op_atomic({}, Download(content_id="0" * 64), 1)
    assert e.value.code == "content_not_found"
    assert e.value.reason == "Content not found"


def test_update_metadata_replaces_wholesale() -> None:
    st: dict = {}
    cid = apply_op_atomic(st, Upload(content=b"x", metadata=_meta(expires_at=500)), 1)["content_id"]
    apply_op_atomic(st, Download(content_id=cid), 2)

    apply_op_atomic(st, UpdateMetadata(content_id=cid, metadata=_meta(name="renamed.txt")), 3)

    rec = st["content"][cid]
    assert rec["metadata"]["name"] == "renamed.txt"
    # Nothing from the previous metadata survives.
    assert rec["metadata"]["expires_at"] is None
    assert rec["metadata"]["content_hash"] is None
    # Payload and access bookkeeping are untouched.
    assert rec["access_count"] == 1
    assert rec["created_at"] == 1
    assert apply_op_atomic(st, Download(content_id=cid), 4)["content"] == b"x"


def test_update_metadata_unknown_content() -> None:
    with pytest.raises(ApplyError) as e:
        apply_op_atomic({}, UpdateMetadata(content_id="missing", metadata=_meta()), 1)
    assert e.value.code == "content_not_found"


def test_payload_is_stored_apart_from_the_record() -> None:
    st: dict = {}
    cid = apply_op_atomic(st, Upload(content=b"abc", metadata=_meta(size=3)), 1)["content_id"]

    assert "content_b64" not in st["content"][cid]
    assert st["payloads"][cid] == base64.b64encode(b"abc").decode("ascii")

    apply_op_atomic(st, UpdateMetadata(content_id=cid, metadata=_meta(name="renamed", size=3)), 2)
    assert apply_op_atomic(st, Download(content_id=cid), 3)["content"] == b"abc"
