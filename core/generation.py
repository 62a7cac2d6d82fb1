"""Generation endpoint: authenticate, govern, write the listing, record usage."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from core.accounts import apply_monthly_rollover, increment_monthly_count, load_or_create_profile
from core.governor import UsageGovernor
from core.http import Request, bearer_token, cors_headers, json_response, origin_allowed
from core.models import DenialReason
from core.prompt_builder import build_listing_prompt
from core.request_log import RequestLog, detect_suspicious_activity, save_request_log
from core.store import AuthBackend, ProfileStore, RequestLogStore
from core.windows import utc_now
from core.writers import ListingWriter

logger = logging.getLogger(__name__)

DENIAL_MESSAGES: dict[DenialReason, str] = {
    DenialReason.KILL_SWITCH_ACTIVE: "Service temporarily unavailable. Please try again later.",
    DenialReason.GLOBAL_BUDGET_EXHAUSTED: (
        "Service temporarily unavailable due to daily budget limits. Please try again later."
    ),
    DenialReason.MONTHLY_LIMIT_REACHED: (
        "Monthly usage limit reached. Please upgrade your plan or try again next month."
    ),
    DenialReason.BURST_LIMIT_EXCEEDED: "Too many requests. Please wait a moment before trying again.",
    DenialReason.DAILY_LIMIT_REACHED: (
        "Daily usage limit reached. Please try again tomorrow or upgrade your plan."
    ),
}


def valid_image_urls(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(isinstance(u, str) and u.strip() for u in value)
    )


class GenerationService:
    """Handles POST /api/generate for the browser extension."""

    def __init__(
        self,
        auth: AuthBackend,
        profiles: ProfileStore,
        governor: UsageGovernor,
        writer: ListingWriter,
        request_logs: RequestLogStore | None = None,
        allowed_origins: list[str] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.auth = auth
        self.profiles = profiles
        self.governor = governor
        self.writer = writer
        self.request_logs = request_logs
        self.allowed_origins = allowed_origins or []
        self.clock = clock

    def _reply(self, log: RequestLog, status: int, body: Any, headers: dict[str, str], reason: str | None = None):
        log.finish(status, reason)
        save_request_log(self.request_logs, log)
        return json_response(status, body, headers)

    def handle(self, event: Any) -> dict[str, Any]:
        request = Request.from_event(event)
        log = RequestLog.from_request(request.method, request.headers, request.body)

        origin = request.headers.get("origin")
        if not origin_allowed(origin, self.allowed_origins):
            message = "CORS origin denied for generate"
            return self._reply(log, 403, {"error": message}, {}, f"CORS error: {message}")
        headers = cors_headers(origin)

        if request.method == "OPTIONS":
            return self._reply(log, 200, None, headers)
        if request.method != "POST":
            return self._reply(log, 405, {"error": "Only POST allowed"}, headers)

        # --- Auth ---
        token = bearer_token(request)
        if not token:
            return self._reply(
                log, 401, {"error": "Missing or invalid Authorization"}, headers,
                "Auth header missing or malformed",
            )
        try:
            user = self.auth.get_user(token)
        except Exception as e:
            logger.error("Token validation error: %s", e)
            user = None
        if user is None:
            return self._reply(
                log, 401, {"error": "Invalid or expired token"}, headers, "Token validation failed",
            )
        log.user_id = user.id
        log.user_email = user.email

        # --- Profile and monthly cycle ---
        now = self.clock()
        try:
            profile = load_or_create_profile(self.profiles, user.id, now)
        except Exception as e:
            logger.error("Error loading profile for account=%s: %s", user.id, e)
            return self._reply(
                log, 500, {"error": "Could not retrieve profile."}, headers, "Profile fetch error",
            )
        apply_monthly_rollover(self.profiles, profile, now)

        log.subscription_tier = profile.subscription_tier
        log.subscription_status = profile.subscription_status
        log.api_calls_count = profile.api_calls_this_month

        # --- Quota ---
        decision = self.governor.check_quota(user.id, profile)
        if not decision.allowed:
            return self._reply(
                log, 429,
                {"error": DENIAL_MESSAGES[decision.reason], "reason": decision.reason.value},
                headers,
                f"Rate limit exceeded: {decision.reason.value}",
            )

        # --- Body ---
        image_urls = request.json_field("imageUrls")
        if not valid_image_urls(image_urls):
            return self._reply(
                log, 400, {"error": "imageUrls must be a non-empty array of strings."}, headers,
                "Invalid imageUrls format",
            )

        prompt = build_listing_prompt(request.json_field("languageCode"))
        log.raw_prompt = prompt.describe(len(image_urls))
        log.model = self.writer.model

        suspicious, reasons = detect_suspicious_activity(
            image_urls=image_urls, raw_prompt=log.raw_prompt, user_agent=log.user_agent,
        )
        if suspicious:
            log.suspicious_activity = True
            log.flagged_reason = "; ".join(reasons)
            logger.warning("Suspicious activity detected for account=%s: %s", user.id, reasons)

        # --- Generate ---
        try:
            listing = self.writer.timed_write(image_urls, prompt)
        except Exception as e:
            logger.error("Generation error for account=%s: %s", user.id, e)
            return self._reply(
                log, 500, {"error": "Internal error during generation."}, headers,
                f"Generation error: {e}",
            )

        log.tokens_used = listing.tokens_used
        log.generated_title = listing.title
        log.generated_description = listing.description
        log.finish(200)
        save_request_log(self.request_logs, log)

        # Only a successful generation is counted.
        self.governor.record_success(user.id, decision.tier)
        increment_monthly_count(self.profiles, profile)

        body: dict[str, Any] = {"title": listing.title, "description": listing.description}
        if decision.remaining is not None:
            body["remaining"] = decision.remaining.to_dict()
        return json_response(200, body, headers)
