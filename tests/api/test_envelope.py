"""Tests for ApiResponse envelope and ResponseMeta."""
from kiss_tracker.api.schemas.envelope import ApiResponse, ResponseMeta


def test_success_response():
    resp = ApiResponse.success({"key": "value"})
    assert resp.ok is True
    assert resp.data == {"key": "value"}
    assert resp.error is None
    assert resp.meta.backend is None


def test_success_with_backend():
    resp = ApiResponse.success([], backend="sql")
    assert resp.meta.backend == "sql"


def test_fail_response():
    resp = ApiResponse.fail("something broke", warnings=["w1"])
    assert resp.ok is False
    assert resp.data is None
    assert resp.error == "something broke"
    assert resp.meta.warnings == ["w1"]


def test_meta_defaults():
    meta = ResponseMeta()
    assert meta.generated_at is not None
    assert meta.warnings == []


def test_serialization():
    dumped = ApiResponse.success({"list": [1, 2, 3]}).model_dump()
    assert dumped["ok"] is True
    assert dumped["data"]["list"] == [1, 2, 3]
    assert set(dumped) == {"ok", "data", "error", "meta"}
