import importlib
import json
from pathlib import Path
import sys

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.http import Request
from core.supabase import SupabaseStore


def test_index_lists_routes_and_plans():
    index = importlib.import_module("api.index")
    response = index.handler({})
    body = json.loads(response["body"])
    assert response["statusCode"] == 200
    assert "/api/generate" in body["routes"]
    assert [p["tier"] for p in body["plans"]] == ["starter", "pro", "business"]


def test_generate_reports_missing_configuration(monkeypatch):
    for name in ("VERCEL_APP_SUPABASE_URL", "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"):
        monkeypatch.setenv(name, "")
    generate = importlib.import_module("api.generate")
    monkeypatch.setattr(generate, "_service", None)

    response = generate.handler({"method": "POST"})

    assert response["statusCode"] == 500


@pytest.mark.parametrize("module_name", ["api.cleanup_rate_limits", "api.reset_counts", "api.emergency_brake"])
def test_maintenance_routes_close_their_store(monkeypatch, module_name):
    monkeypatch.setenv("CRON_SECRET", "")
    monkeypatch.setenv("ADMIN_SECRET", "")
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
    store = SupabaseStore("https://project.supabase.co", "service-key", client=client)
    route = importlib.import_module(module_name)
    monkeypatch.setattr(route, "build_store", lambda settings: store)

    response = route.handler({"method": "POST", "headers": {"Authorization": "Bearer guess"}})

    assert response["statusCode"] == 401
    assert client.is_closed


def test_request_from_event_normalizes_headers_and_body():
    request = Request.from_event({
        "httpMethod": "post",
        "headers": {"Content-Type": "application/json", "X-Real-IP": "10.0.0.1"},
        "body": b'{"imageUrls": ["a"]}',
    })
    assert request.method == "POST"
    assert request.headers["x-real-ip"] == "10.0.0.1"
    assert request.json_field("imageUrls") == ["a"]
    assert Request.from_event({"body": "not json"}).body is None
