"""Scheduled and administrative routes: counter sweep, monthly reset, kill switch."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from core.accounts import reset_stale_monthly_counts
from core.governor import UsageGovernor
from core.http import Request, has_secret, json_response
from core.models import KillSwitch
from core.store import ProfileStore, SettingsStore
from core.windows import utc_now

logger = logging.getLogger(__name__)

UNAUTHORIZED = {"error": "Unauthorized"}


def cleanup_rate_limits(event: Any, governor: UsageGovernor, cron_secret: str) -> dict[str, Any]:
    request = Request.from_event(event)
    if not has_secret(request, cron_secret):
        return json_response(401, UNAUTHORIZED)

    try:
        deleted = governor.sweep_expired()
    except Exception as e:
        logger.error("Rate limit cleanup failed: %s", e)
        return json_response(500, {"success": False, "error": str(e)})

    return json_response(200, {
        "success": True,
        "message": "Rate limit records cleaned up successfully",
        "deleted": deleted,
    })


def reset_counts(
    event: Any,
    profiles: ProfileStore,
    cron_secret: str,
    clock: Callable[[], datetime] = utc_now,
) -> dict[str, Any]:
    request = Request.from_event(event)
    if not has_secret(request, cron_secret):
        return json_response(401, UNAUTHORIZED)

    try:
        reset = reset_stale_monthly_counts(profiles, clock())
    except Exception as e:
        logger.error("Monthly usage reset failed: %s", e)
        return json_response(500, {"success": False, "error": str(e)})

    return json_response(200, {"success": True, "message": "Usage counts checked for reset.", "reset": reset})


def emergency_brake(
    event: Any,
    settings: SettingsStore,
    admin_secret: str,
    clock: Callable[[], datetime] = utc_now,
) -> dict[str, Any]:
    """Enable or disable the kill switch that blocks every generation."""
    request = Request.from_event(event)
    if not has_secret(request, admin_secret):
        return json_response(401, UNAUTHORIZED)
    if request.method != "POST":
        return json_response(405, {"error": "Method not allowed"})

    action = request.json_field("action")
    reason = request.json_field("reason")
    if action == "enable":
        switch = KillSwitch(enabled=True, reason=reason or "Manual activation", updated_at=clock())
        message = "Emergency brake enabled - all API calls are now blocked"
    elif action == "disable":
        switch = KillSwitch(enabled=False, reason=reason or "Manual deactivation", updated_at=clock())
        message = "Emergency brake disabled - API calls resumed"
    else:
        return json_response(400, {"error": "Invalid action. Use 'enable' or 'disable'"})

    try:
        settings.set_kill_switch(switch)
    except Exception as e:
        logger.error("Error toggling emergency brake: %s", e)
        return json_response(500, {"error": str(e)})

    logger.warning("Emergency brake %s: %s", "ENABLED" if switch.enabled else "disabled", switch.reason)
    return json_response(200, {"success": True, "message": message, "reason": reason})
