"""Prompt builder that turns a generation request into model prompts."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from prompts.templates import DEFAULT_LANGUAGE, LANGUAGES, LISTING_PROMPT, SYSTEM_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class ListingPrompt:
    system: str
    user: str
    language: str

    def describe(self, image_count: int) -> str:
        """Flattened form stored in the request log."""
        return f"System: {self.system}\n\nUser: {self.user}\n\nImages: {image_count} image(s)"


def resolve_language(language_code: str | None) -> str:
    code = str(language_code or "en").strip().lower()
    return LANGUAGES.get(code, DEFAULT_LANGUAGE)


def build_listing_prompt(language_code: str | None = None) -> ListingPrompt:
    """Build the system and user prompts for a listing in the requested language."""
    language = resolve_language(language_code)
    prompt = ListingPrompt(
        system=SYSTEM_PROMPT,
        user=LISTING_PROMPT.safe_substitute(language=language),
        language=language,
    )
    logger.debug("Built listing prompt for language=%s", language)
    return prompt
