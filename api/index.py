"""Minimal Vercel serverless entrypoint describing this deployment.

The routes that do real work live next to this file; this one answers the
bare root so a visit does not hit a generic NOT_FOUND page.
"""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.http import json_response
from core.tiers import paid_tiers

ROUTES = {
    "/api/generate": "POST photos, receive a listing title and description",
    "/api/cleanup_rate_limits": "cron: delete expired usage counters",
    "/api/reset_counts": "cron: reset monthly usage for a new calendar month",
    "/api/emergency_brake": "admin: enable or disable the kill switch",
}


def handler(request):
    """Vercel Python serverless function handler."""
    body = {
        "ok": True,
        "project": "autolister-backend",
        "routes": ROUTES,
        "plans": [
            {"tier": p.tier.value, "name": p.display_name, "monthly_price": p.monthly_price}
            for p in paid_tiers()
        ],
    }
    return json_response(200, body)
