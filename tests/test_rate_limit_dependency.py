"""Tests for the FastAPI rate limiting dependency and demo app."""

from email.utils import parsedate_to_datetime
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from sql_rate_limit.adapters.rate_limit.base import RateLimitResult
from sql_rate_limit.adapters.rate_limit.sql import RateLimiter
from sql_rate_limit.adapters.store.sqlalchemy_store import SQLAlchemyStore
from sql_rate_limit.core.app_factory import create_app
from sql_rate_limit.core.config import settings
from sql_rate_limit.core.errors import StoreError
from sql_rate_limit.core.rate_limit import rate_limit_headers


@pytest.fixture
def rate_limit_config(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings.rate_limit, "enabled", True)
    monkeypatch.setattr(settings.rate_limit, "requests", 2)
    monkeypatch.setattr(settings.rate_limit, "window_ms", 60_000)
    monkeypatch.setattr(settings.rate_limit, "include_headers", True)
    return settings.rate_limit


@pytest.fixture
def client(rate_limit_config):
    limiter = RateLimiter(SQLAlchemyStore("sqlite://"))
    with TestClient(create_app(limiter)) as test_client:
        yield test_client


def test_allowed_request_carries_headers(client: TestClient) -> None:
    response = client.get("/v1/hello")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Hello from the API!"
    assert body["rate_limit"]["limit"] == 2
    assert body["rate_limit"]["remaining"] == 1
    assert response.headers["X-RateLimit-Limit"] == "2"
    assert response.headers["X-RateLimit-Remaining"] == "1"
    assert parsedate_to_datetime(response.headers["X-RateLimit-Reset"]) is not None


def test_exceeding_budget_returns_429(client: TestClient) -> None:
    assert client.get("/v1/hello").status_code == 200
    assert client.get("/v1/hello").status_code == 200

    blocked = client.get("/v1/hello")

    assert blocked.status_code == 429
    assert blocked.json()["detail"].startswith("Rate limit exceeded. Try again in ")
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert int(blocked.headers["Retry-After"]) in (59, 60)


def test_forwarded_for_selects_key(client: TestClient) -> None:
    client.get("/v1/hello", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
    client.get("/v1/hello", headers={"X-Forwarded-For": "203.0.113.7"})

    assert client.get("/v1/hello", headers={"X-Forwarded-For": "203.0.113.7"}).status_code == 429
    assert client.get("/v1/hello", headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 200


def test_health_is_not_rate_limited(client: TestClient) -> None:
    for _ in range(5):
        assert client.get("/health").status_code == 200


def test_headers_can_be_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "include_headers", False)

    response = client.get("/v1/hello")

    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers


def test_disabled_rate_limit_skips_limiter(rate_limit_config, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.rate_limit, "enabled", False)
    limiter = Mock(spec=RateLimiter)

    with TestClient(create_app(limiter)) as test_client:
        response = test_client.get("/v1/hello")

    assert response.status_code == 200
    assert response.json()["rate_limit"] is None
    limiter.limit.assert_not_called()
    limiter.close.assert_called_once()


def test_store_failure_returns_503(rate_limit_config) -> None:
    limiter = Mock(spec=RateLimiter)
    limiter.limit.side_effect = StoreError(code="store_unavailable", message="Store connect failed")

    with TestClient(create_app(limiter)) as test_client:
        response = test_client.get("/v1/hello", headers={"X-Request-ID": "req-503"})

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "store_unavailable"
    assert error["request_id"] == "req-503"


def test_openapi_documents_rate_limit_responses(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    responses = schema["paths"]["/v1/hello"]["get"]["responses"]
    assert "429" in responses
    assert "503" in responses
    assert "X-RateLimit-Remaining" in responses["200"]["headers"]
    assert "429" not in schema["paths"]["/health"]["get"]["responses"]


def test_reset_header_is_http_date() -> None:
    result = RateLimitResult(success=True, limit=5, remaining=4, reset=60_000)

    headers = rate_limit_headers(result, now=0)

    assert headers == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": "Thu, 01 Jan 1970 00:01:00 GMT",
    }


def test_dependency_passes_configured_options(rate_limit_config) -> None:
    limiter = Mock(spec=RateLimiter)
    limiter.limit.return_value = RateLimitResult(success=True, limit=2, remaining=1, reset=60_000)

    with TestClient(create_app(limiter)) as test_client:
        test_client.get("/v1/hello", headers={"X-Forwarded-For": "203.0.113.7"})

    limiter.limit.assert_called_once_with(key="ip:203.0.113.7", limit=2, window=60_000)
