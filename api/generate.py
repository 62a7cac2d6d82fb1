"""Vercel serverless entrypoint for POST /api/generate."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import Settings
from core.generation import GenerationService
from core.http import json_response
from core.wiring import build_generation_service

load_dotenv()
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Reused across warm invocations of the same function instance.
_service: GenerationService | None = None


def get_service() -> GenerationService:
    global _service
    if _service is None:
        _service = build_generation_service(Settings.from_env())
    return _service


def handler(request):
    """Vercel Python serverless function handler."""
    try:
        service = get_service()
    except ValueError as e:
        logger.error("Generation service is misconfigured: %s", e)
        return json_response(500, {"error": "Service is not configured."})
    return service.handle(request)
