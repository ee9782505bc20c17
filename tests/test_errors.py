"""
Tests for error handling: structured error responses, HTTP status codes,
and the custom exception classes.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from circle_stats.core.errors import (
    CircleNotFoundError,
    CircleStatsException,
    StatsUnavailableError,
)
from circle_stats.db.base import get_db
from circle_stats.main import app
from circle_stats.routers import circles as circles_router


def _store_down(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("connection refused"))


# ---------------------------------------------------------------------------
# Unit tests on exception classes
# ---------------------------------------------------------------------------

class TestExceptionClasses:
    def test_base_exception(self):
        err = CircleStatsException("boom")
        assert err.http_status == 500
        assert err.code == "INTERNAL_ERROR"
        assert err.to_dict() == {"code": "INTERNAL_ERROR", "message": "boom"}

    def test_circle_not_found(self):
        err = CircleNotFoundError("circle-9")
        assert err.http_status == 404
        assert err.code == "CIRCLE_NOT_FOUND"
        assert "circle-9" in err.message
        assert err.to_dict()["details"] == {"circle_id": "circle-9"}

    def test_stats_unavailable(self):
        err = StatsUnavailableError("circle-9", "percentile")
        assert err.http_status == 503
        assert err.code == "STATS_UNAVAILABLE"
        d = err.to_dict()
        assert d["details"]["operation"] == "percentile"
        assert d["details"]["circle_id"] == "circle-9"


# ---------------------------------------------------------------------------
# HTTP error envelopes
# ---------------------------------------------------------------------------

class TestNotFound:
    @pytest.mark.parametrize("method,path", [
        ("get", "/circles/missing/stats"),
        ("get", "/circles/missing/stats/full"),
        ("get", "/circles/missing/stats/tab"),
        ("get", "/circles/missing/history"),
        ("get", "/circles/missing/percentile"),
        ("get", "/circles/missing/streak"),
        ("post", "/circles/missing/cache/invalidate"),
    ])
    def test_unknown_circle(self, client, method, path):
        r = getattr(client, method)(path)
        assert r.status_code == 404
        body = r.json()
        assert body["code"] == "CIRCLE_NOT_FOUND"
        assert body["details"]["circle_id"] == "missing"


class TestValidation:
    @pytest.mark.parametrize("path,params", [
        ("stats/tab", {"limit": 0}),
        ("stats/tab", {"limit": 367}),
        ("stats/tab", {"offset": -1}),
        ("history", {"days": 0}),
        ("history", {"offset": -1}),
        ("history", {"offset": "soon"}),
    ])
    def test_bad_query_params(self, client, make_circle, path, params):
        cid = make_circle(members=("a",))
        r = client.get(f"/circles/{cid}/{path}", params=params)
        assert r.status_code == 422
        body = r.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"]
        assert body["details"]["errors"][0]["field"].startswith("query.")


class TestStoreFailures:
    def test_stats_store_failure_is_503(self, client, make_circle, monkeypatch):
        cid = make_circle(members=("a",))
        monkeypatch.setattr(circles_router, "get_stats_with_cache", _store_down)

        r = client.get(f"/circles/{cid}/stats")

        assert r.status_code == 503
        body = r.json()
        assert body["code"] == "STATS_UNAVAILABLE"
        assert body["details"] == {"circle_id": cid, "operation": "basic_stats"}

    def test_percentile_store_failure_is_503(self, client, make_circle, monkeypatch):
        cid = make_circle(members=("a",))
        monkeypatch.setattr(circles_router, "compute_percentile", _store_down)

        r = client.get(f"/circles/{cid}/percentile")

        assert r.status_code == 503
        assert r.json()["details"]["operation"] == "percentile"

    @pytest.mark.parametrize("method,path,operation", [
        ("get", "/circles/c1/stats", "basic_stats"),
        ("get", "/circles/c1/streak", "streak"),
        ("post", "/circles/c1/cache/invalidate", "cache_invalidate"),
    ])
    def test_circle_lookup_failure_is_503(self, client, method, path, operation):
        class DownSession:
            query = staticmethod(_store_down)

        def down_db():
            yield DownSession()

        previous = app.dependency_overrides[get_db]
        app.dependency_overrides[get_db] = down_db
        try:
            r = getattr(client, method)(path)
        finally:
            app.dependency_overrides[get_db] = previous

        assert r.status_code == 503
        body = r.json()
        assert body["code"] == "STATS_UNAVAILABLE"
        assert body["details"] == {"circle_id": "c1", "operation": operation}

    def test_unexpected_error_is_500(self, client, make_circle, monkeypatch):
        cid = make_circle(members=("a",))

        def explode(*args, **kwargs):
            raise RuntimeError("unexpected")

        monkeypatch.setattr(circles_router, "get_circle_streak", explode)

        with TestClient(app, raise_server_exceptions=False) as c:
            r = c.get(f"/circles/{cid}/streak")

        assert r.status_code == 500
        assert r.json() == {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        }


class TestOpenApi:
    def test_service_tags_documented(self, client):
        schema = client.get("/openapi.json").json()
        assert {t["name"] for t in schema["tags"]} == {"circles", "alignment", "health"}
        assert "circle" in schema["info"]["description"].lower()

    def test_error_envelopes_documented(self, client):
        schema = client.get("/openapi.json").json()
        assert "ErrorResponse" in schema["components"]["schemas"]
        stats = schema["paths"]["/circles/{circle_id}/stats"]["get"]["responses"]
        assert stats["404"]["content"]["application/json"]["schema"]["$ref"].endswith(
            "/ErrorResponse"
        )
        assert stats["422"]["content"]["application/json"]["schema"]["$ref"].endswith(
            "/ValidationErrorResponse"
        )
