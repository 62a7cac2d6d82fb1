"""Per-request audit log and abuse heuristics for the generation endpoint."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from core.store import RequestLogStore

logger = logging.getLogger(__name__)

SUSPICIOUS_KEYWORDS = (
    "hack", "exploit", "malware", "virus", "attack",
    "adult", "porn", "xxx", "sexual", "explicit",
    "drug", "illegal", "weapon", "violence",
    "spam", "scam", "fraud", "phishing",
)

TRUSTED_IMAGE_HOSTS = ("vinted", "imgur", "cloudinary")
INAPPROPRIATE_URL_MARKERS = ("adult", "porn", "xxx")
BOT_USER_AGENT_MARKERS = ("bot", "crawler", "spider")

IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)


def client_ip(headers: dict[str, str]) -> str | None:
    """First address in the forwarding headers, checked in order of trust."""
    for name in IP_HEADERS:
        value = headers.get(name)
        if value:
            return value.split(",")[0].strip() or None
    return None


@dataclass
class RequestLog:
    """Everything worth keeping about one generation request."""

    request_method: str
    endpoint: str = "/api/generate"
    user_agent: str | None = None
    origin: str | None = None
    ip_address: str | None = None
    full_request_body: Any = None
    image_urls: list[str] | None = None

    user_id: str | None = None
    user_email: str | None = None
    subscription_tier: str | None = None
    subscription_status: str | None = None
    api_calls_count: int | None = None

    raw_prompt: str | None = None
    model: str | None = None
    tokens_used: int | None = None
    generated_title: str | None = None
    generated_description: str | None = None

    response_status: int | None = None
    suspicious_activity: bool = False
    flagged_reason: str | None = None
    started_at: float = field(default_factory=time.time)
    processing_duration_ms: int | None = None

    @classmethod
    def from_request(cls, method: str, headers: dict[str, str], body: Any, endpoint: str = "/api/generate") -> RequestLog:
        log = cls(
            request_method=method or "UNKNOWN",
            endpoint=endpoint,
            user_agent=headers.get("user-agent"),
            origin=headers.get("origin"),
            ip_address=client_ip(headers),
            full_request_body=body,
        )
        if isinstance(body, dict) and isinstance(body.get("imageUrls"), list):
            log.image_urls = body["imageUrls"]
        return log

    def finish(self, status: int, reason: str | None = None) -> None:
        self.response_status = status
        if reason:
            self.flagged_reason = reason
        self.processing_duration_ms = int((time.time() - self.started_at) * 1000)

    def to_row(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "endpoint": self.endpoint,
            "request_method": self.request_method,
            "user_agent": self.user_agent,
            "origin": self.origin,
            "ip_address": self.ip_address,
            "image_urls": json.dumps(self.image_urls) if self.image_urls else None,
            "raw_prompt": self.raw_prompt,
            "full_request_body": self.full_request_body,
            "generated_title": self.generated_title,
            "generated_description": self.generated_description,
            "response_status": self.response_status,
            "openai_model": self.model,
            "openai_tokens_used": self.tokens_used,
            "user_email": self.user_email,
            "subscription_tier": self.subscription_tier,
            "subscription_status": self.subscription_status,
            "api_calls_count": self.api_calls_count,
            "processing_duration_ms": self.processing_duration_ms,
            "suspicious_activity": self.suspicious_activity,
            "flagged_reason": self.flagged_reason,
        }


def detect_suspicious_activity(
    image_urls: list[str] | None = None,
    raw_prompt: str | None = None,
    user_agent: str | None = None,
    request_frequency: int | None = None,
) -> tuple[bool, list[str]]:
    """Flag requests that look abusive. Flags are recorded, never enforced."""
    reasons: list[str] = []

    for url in image_urls or []:
        lowered = url.lower()
        trusted = any(host in lowered for host in TRUSTED_IMAGE_HOSTS)
        if not trusted and any(marker in lowered for marker in INAPPROPRIATE_URL_MARKERS):
            reasons.append("Potentially inappropriate image URLs detected")
            break

    if raw_prompt:
        lowered = raw_prompt.lower()
        found = [word for word in SUSPICIOUS_KEYWORDS if word in lowered]
        if found:
            reasons.append(f"Suspicious keywords detected: {', '.join(found)}")

    if user_agent and (
        any(marker in user_agent for marker in BOT_USER_AGENT_MARKERS)
        or "Mozilla" not in user_agent
    ):
        reasons.append("Potential bot/automated traffic detected")

    if request_frequency and request_frequency > 10:
        reasons.append(f"High request frequency: {request_frequency} requests")

    return bool(reasons), reasons


def save_request_log(store: RequestLogStore | None, log: RequestLog) -> None:
    """Persist the log row. Logging must never break the request it describes."""
    if store is None:
        return
    try:
        store.insert_request_log(log.to_row())
    except Exception as e:
        logger.error("Failed to log API request: %s", e)
