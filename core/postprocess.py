"""Post-processing for model input and output: image preparation and listing parsing."""

from __future__ import annotations

import io
import json
import logging
import re

from PIL import Image

from core.models import GeneratedListing

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"
DEFAULT_DESCRIPTION = "No description available."

# Longest edge sent to vision models; larger photos only cost more tokens.
MAX_IMAGE_EDGE = 1536

_FENCE_RE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$", re.IGNORECASE)


def strip_code_fence(content: str) -> str:
    content = content.strip()
    match = _FENCE_RE.match(content)
    if match and match.group(1):
        return match.group(1).strip()
    return content


def parse_listing(raw: str | None, provider: str = "", model: str = "") -> GeneratedListing:
    """Parse the model's JSON reply, falling back to placeholders on bad output."""
    content = strip_code_fence(raw or "") or "{}"

    parsed: dict = {}
    try:
        data = json.loads(content)
        if isinstance(data, dict):
            parsed = data
        else:
            logger.warning("Model output is JSON but not an object: %s", content)
    except json.JSONDecodeError:
        logger.warning("Model output not valid JSON: %s", content)

    title = str(parsed.get("title") or "").strip() or DEFAULT_TITLE
    description = str(parsed.get("description") or "").strip() or DEFAULT_DESCRIPTION
    return GeneratedListing(title=title, description=description, provider=provider, model=model)


def prepare_image(data: bytes, max_edge: int = MAX_IMAGE_EDGE) -> bytes:
    """Decode an uploaded photo, shrink it to ``max_edge`` and re-encode as JPEG."""
    image = Image.open(io.BytesIO(data)).convert("RGB")

    src_w, src_h = image.size
    longest = max(src_w, src_h)
    if longest > max_edge:
        scale = max_edge / longest
        image = image.resize((int(src_w * scale), int(src_h * scale)), Image.LANCZOS)
        logger.debug("Downscaled image %dx%d -> %dx%d", src_w, src_h, *image.size)

    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=90)
    return buf.getvalue()
