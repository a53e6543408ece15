from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sql_rate_limit.adapters.rate_limit.sql import RateLimiter
from sql_rate_limit.adapters.store.sqlalchemy_store import SQLAlchemyStore
from sql_rate_limit.core.app_factory import create_app


@pytest.fixture
def client():
    with TestClient(create_app(RateLimiter(SQLAlchemyStore("sqlite://")))) as test_client:
        yield test_client


def test_preserves_incoming_request_id_header(client: TestClient):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_request_id_on_rate_limited_route(client: TestClient):
    resp = client.get("/v1/hello", headers={"X-Request-ID": "req-hello"})

    assert resp.headers.get("X-Request-ID") == "req-hello"
