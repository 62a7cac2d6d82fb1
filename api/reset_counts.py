"""Scheduled job: start a new monthly cycle for profiles still on last month's."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import Settings
from core.http import json_response
from core.maintenance import reset_counts
from core.wiring import build_store

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def handler(request):
    settings = Settings.from_env()
    try:
        store = build_store(settings)
    except ValueError as e:
        logger.error("Reset job is misconfigured: %s", e)
        return json_response(500, {"success": False, "error": str(e)})
    with store:
        return reset_counts(request, store, settings.cron_secret)
