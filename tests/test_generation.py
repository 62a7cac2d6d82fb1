from datetime import datetime, timezone
import json
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.generation import GenerationService
from core.governor import UsageGovernor
from core.models import AccountProfile, AuthUser, GeneratedListing, KillSwitch
from core.store import InMemoryStore
from core.windows import WindowKind, window_key
from core.writers import ListingWriter

NOW = datetime(2025, 3, 4, 12, 0, 30, tzinfo=timezone.utc)
BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/126.0"
IMAGES = ["https://images1.vinted.net/t/01.jpeg", "https://images1.vinted.net/t/02.jpeg"]


class FakeWriter(ListingWriter):
    provider_name = "fake"
    model = "fake-vision-1"

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def write(self, image_urls, prompt):
        self.calls.append((image_urls, prompt))
        if self.fail:
            raise RuntimeError("model overloaded")
        return GeneratedListing(
            title="Zara Beige Trench Coat",
            description="Excellent condition. #zara #trench",
            provider=self.provider_name,
            model=self.model,
            tokens_used=120,
        )


def make_service(writer=None, store=None):
    store = store or InMemoryStore()
    store.users["good-token"] = AuthUser(id="acct", email="seller@example.com")
    governor = UsageGovernor(store, store, store, clock=lambda: NOW)
    service = GenerationService(
        auth=store,
        profiles=store,
        governor=governor,
        writer=writer or FakeWriter(),
        request_logs=store,
        allowed_origins=["chrome-extension://autolister"],
        clock=lambda: NOW,
    )
    return service, store


def event(method="POST", body=None, token="good-token", origin="https://www.vinted.fr"):
    headers = {"User-Agent": BROWSER_UA}
    if origin:
        headers["Origin"] = origin
    if token:
        headers["Authorization"] = f"Bearer {token}"
    payload = {"imageUrls": IMAGES, "languageCode": "fr"} if body is None else body
    return {"method": method, "headers": headers, "body": json.dumps(payload)}


def body_of(response):
    return json.loads(response["body"]) if response["body"] else None


def test_successful_generation_records_usage():
    service, store = make_service()

    response = service.handle(event())

    assert response["statusCode"] == 200
    assert response["headers"]["access-control-allow-origin"] == "https://www.vinted.fr"
    body = body_of(response)
    assert body["title"] == "Zara Beige Trench Coat"
    assert body["remaining"] == {"minute": 2, "day": 1, "month": 7}

    assert store.get_profile("acct").api_calls_this_month == 1
    assert store.get_counter("acct", window_key("acct", WindowKind.MINUTE, NOW)).count == 1
    assert store.get_counter("acct", window_key("acct", WindowKind.DAY, NOW)).count == 1
    assert store.get_daily_stat("2025-03-04").total_api_calls == 1

    log = store.request_logs[-1]
    assert log["response_status"] == 200
    assert log["user_id"] == "acct"
    assert log["openai_tokens_used"] == 120
    assert "in French" in log["raw_prompt"]


def test_third_call_of_the_day_is_denied_for_free_tier():
    service, store = make_service()

    assert service.handle(event())["statusCode"] == 200
    assert service.handle(event())["statusCode"] == 200
    response = service.handle(event())

    assert response["statusCode"] == 429
    assert body_of(response)["reason"] == "daily_limit_reached"
    assert store.get_profile("acct").api_calls_this_month == 2


def test_kill_switch_response_mentions_only_kill_switch():
    service, store = make_service()
    store.set_kill_switch(KillSwitch(enabled=True, reason="incident"))

    response = service.handle(event())

    assert response["statusCode"] == 429
    body = body_of(response)
    assert body["reason"] == "kill_switch_active"
    assert "Daily" not in body["error"]


def test_writer_failure_records_nothing():
    writer = FakeWriter(fail=True)
    service, store = make_service(writer=writer)

    response = service.handle(event())

    assert response["statusCode"] == 500
    assert store.counters == {}
    assert store.daily_stats == {}
    assert store.get_profile("acct").api_calls_this_month == 0
    assert store.request_logs[-1]["flagged_reason"].startswith("Generation error")


def test_denied_request_never_calls_the_writer():
    writer = FakeWriter()
    service, store = make_service(writer=writer)
    store.upsert_profile(AccountProfile("acct", api_calls_this_month=8, last_api_call_reset=NOW))

    response = service.handle(event())

    assert body_of(response)["reason"] == "monthly_limit_reached"
    assert writer.calls == []


def test_monthly_rollover_happens_before_the_check():
    service, store = make_service()
    store.upsert_profile(AccountProfile(
        "acct", api_calls_this_month=8, last_api_call_reset=datetime(2025, 2, 20, tzinfo=timezone.utc),
    ))

    response = service.handle(event())

    assert response["statusCode"] == 200
    profile = store.get_profile("acct")
    assert profile.api_calls_this_month == 1
    assert profile.last_api_call_reset == NOW


def test_cors_rejects_unknown_origin():
    service, store = make_service()
    response = service.handle(event(origin="https://evil.example"))
    assert response["statusCode"] == 403
    assert store.request_logs[-1]["flagged_reason"].startswith("CORS error")


def test_configured_origin_and_preflight():
    service, _ = make_service()
    response = service.handle(event(method="OPTIONS", origin="chrome-extension://autolister"))
    assert response["statusCode"] == 200
    assert response["body"] == ""


def test_only_post_is_allowed():
    service, _ = make_service()
    assert service.handle(event(method="GET"))["statusCode"] == 405


def test_missing_or_invalid_token():
    service, _ = make_service()
    assert service.handle(event(token=None))["statusCode"] == 401
    assert service.handle(event(token="forged"))["statusCode"] == 401


def test_invalid_image_urls():
    service, store = make_service()
    for payload in ({"imageUrls": []}, {"imageUrls": ["  "]}, {"imageUrls": "https://x"}, {}):
        response = service.handle(event(body=payload))
        assert response["statusCode"] == 400
    assert store.counters == {}


def test_bot_user_agent_is_flagged_but_served():
    service, store = make_service()
    request = event()
    request["headers"]["User-Agent"] = "python-requests/2.32"

    response = service.handle(request)

    assert response["statusCode"] == 200
    log = store.request_logs[-1]
    assert log["suspicious_activity"] is True
    assert "bot" in log["flagged_reason"]
