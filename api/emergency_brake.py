"""Admin route: POST {"action": "enable" | "disable", "reason": ...} toggles the kill switch."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import Settings
from core.http import json_response
from core.maintenance import emergency_brake
from core.wiring import build_store

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def handler(request):
    settings = Settings.from_env()
    try:
        store = build_store(settings)
    except ValueError as e:
        logger.error("Emergency brake route is misconfigured: %s", e)
        return json_response(500, {"error": str(e)})
    with store:
        return emergency_brake(request, store, settings.admin_secret)
