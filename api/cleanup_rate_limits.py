"""Scheduled job: delete usage counters whose window has closed."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import Settings
from core.http import json_response
from core.maintenance import cleanup_rate_limits
from core.wiring import build_governor, build_store

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def handler(request):
    settings = Settings.from_env()
    try:
        store = build_store(settings)
    except ValueError as e:
        logger.error("Cleanup job is misconfigured: %s", e)
        return json_response(500, {"success": False, "error": str(e)})
    with store:
        return cleanup_rate_limits(request, build_governor(settings, store), settings.cron_secret)
