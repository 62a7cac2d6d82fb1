from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.request_log import RequestLog, client_ip, detect_suspicious_activity, save_request_log
from core.store import InMemoryStore, StoreError

BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15"


class BrokenLogStore(InMemoryStore):
    def insert_request_log(self, row):
        raise StoreError("api_logs unavailable")


def test_client_ip_prefers_forwarded_for():
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "x-real-ip": "10.0.0.2"}
    assert client_ip(headers) == "203.0.113.7"
    assert client_ip({"x-real-ip": "10.0.0.2"}) == "10.0.0.2"
    assert client_ip({}) is None


def test_request_log_from_request_captures_metadata():
    body = {"imageUrls": ["https://images.vinted.net/a.jpg"]}
    log = RequestLog.from_request("POST", {"user-agent": BROWSER_UA, "origin": "https://www.vinted.fr"}, body)

    assert log.image_urls == ["https://images.vinted.net/a.jpg"]
    assert log.origin == "https://www.vinted.fr"

    log.finish(200)
    row = log.to_row()
    assert row["response_status"] == 200
    assert row["image_urls"] == '["https://images.vinted.net/a.jpg"]'
    assert row["processing_duration_ms"] >= 0


def test_clean_request_is_not_flagged():
    suspicious, reasons = detect_suspicious_activity(
        image_urls=["https://images.vinted.net/a.jpg"],
        raw_prompt="Describe this jacket",
        user_agent=BROWSER_UA,
    )
    assert suspicious is False
    assert reasons == []


def test_flags_keywords_bots_urls_and_frequency():
    suspicious, reasons = detect_suspicious_activity(
        image_urls=["https://example.com/xxx/1.jpg"],
        raw_prompt="write a phishing scam",
        user_agent="curl/8.0",
        request_frequency=25,
    )
    assert suspicious is True
    assert reasons[0] == "Potentially inappropriate image URLs detected"
    assert reasons[1] == "Suspicious keywords detected: scam, phishing"
    assert "Potential bot/automated traffic detected" in reasons
    assert "High request frequency: 25 requests" in reasons


def test_trusted_hosts_are_not_flagged_for_url_markers():
    suspicious, _ = detect_suspicious_activity(image_urls=["https://imgur.com/xxx.jpg"], user_agent=BROWSER_UA)
    assert suspicious is False


def test_save_request_log_swallows_failures():
    log = RequestLog.from_request("POST", {}, None)
    save_request_log(BrokenLogStore(), log)
    save_request_log(None, log)

    store = InMemoryStore()
    save_request_log(store, log)
    assert store.request_logs[0]["request_method"] == "POST"
