"""Prompt templates for resale listing generation."""

from __future__ import annotations

from string import Template

SYSTEM_PROMPT = (
    "You are a savvy Vinted seller. Your goal is to create listings that are "
    "appealing, trustworthy, and get items sold."
)

LISTING_PROMPT = Template(
    "Analyze the image(s) and generate a title and description in $language.\n"
    "- Title format: [Brand] [Color] [Item].\n"
    "- Description: Note a positive condition (e.g., excellent condition, Like new). "
    "Write in a friendly, casual tone but not overboard. No negative remarks related "
    "to wrinkles or creasing. Highlight a key feature, the feel of the fabric, or a "
    "good way to style it. End with 4-5 relevant SEO hashtags.\n"
    'Reply only in JSON: {"title":"...","description":"..."}'
)

# --- Output languages, keyed by the marketplace language code ---

LANGUAGES: dict[str, str] = {
    "en": "English",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
    "it": "Italian",
    "nl": "Dutch",
    "pl": "Polish",
    "pt": "Portuguese",
    "lt": "Lithuanian",
    "cs": "Czech",
    "sk": "Slovak",
    "hu": "Hungarian",
    "ro": "Romanian",
    "hr": "Croatian",
    "fi": "Finnish",
    "sv": "Swedish",
    "da": "Danish",
    "el": "Greek",
}

DEFAULT_LANGUAGE = "English"
