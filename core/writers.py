"""Listing writer interface and model-provider implementations."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import httpx

from core.config import resolve_api_key
from core.models import GeneratedListing
from core.postprocess import parse_listing, prepare_image
from core.prompt_builder import ListingPrompt

logger = logging.getLogger(__name__)


class ListingWriter(ABC):
    """Base interface for vision models that write a listing from photos."""

    provider_name: str = "base"
    model: str = ""

    @abstractmethod
    def write(self, image_urls: list[str], prompt: ListingPrompt) -> GeneratedListing:
        ...

    def timed_write(self, image_urls: list[str], prompt: ListingPrompt) -> GeneratedListing:
        start = time.time()
        listing = self.write(image_urls, prompt)
        listing.generation_time_s = round(time.time() - start, 2)
        return listing


class OpenAIListingWriter(ListingWriter):
    """OpenAI chat completions with image URLs passed straight through."""

    provider_name = "openai"

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o-mini", max_tokens: int = 165) -> None:
        self.api_key = resolve_api_key(api_key, "VERCEL_APP_OPENAI_API_KEY", "OPENAI_API_KEY")
        self.model = model or "gpt-4o-mini"
        self.max_tokens = max_tokens
        self._client = None
        if not self.api_key:
            raise ValueError("OpenAI API key is required. Set OPENAI_API_KEY or pass api_key.")

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def write(self, image_urls: list[str], prompt: ListingPrompt) -> GeneratedListing:
        client = self._get_client()
        logger.info("Writing listing via OpenAI model=%s (%d image(s))", self.model, len(image_urls))

        parts = [{"type": "image_url", "image_url": {"url": url}} for url in image_urls]
        chat = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": [*parts, {"type": "text", "text": prompt.user}]},
            ],
            max_tokens=self.max_tokens,
        )

        content = chat.choices[0].message.content if chat.choices else None
        listing = parse_listing(content, provider=self.provider_name, model=self.model)
        listing.tokens_used = chat.usage.total_tokens if chat.usage else None
        return listing


class GeminiListingWriter(ListingWriter):
    """Google Gemini; photos are downloaded and sent inline."""

    provider_name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-2.0-flash",
        max_output_tokens: int = 300,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = resolve_api_key(api_key, "GEMINI_API_KEY", "GOOGLE_API_KEY")
        self.model = model or "gemini-2.0-flash"
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self._client = None
        if not self.api_key:
            raise ValueError("Gemini API key is required. Set GEMINI_API_KEY or pass api_key.")

    def _get_client(self):
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _fetch_images(self, image_urls: list[str]) -> list[bytes]:
        images = []
        with httpx.Client(timeout=self.timeout, follow_redirects=True) as http:
            for url in image_urls:
                resp = http.get(url)
                resp.raise_for_status()
                images.append(prepare_image(resp.content))
        return images

    def write(self, image_urls: list[str], prompt: ListingPrompt) -> GeneratedListing:
        from google.genai import types

        client = self._get_client()
        logger.info("Writing listing via Gemini model=%s (%d image(s))", self.model, len(image_urls))

        parts = [types.Part.from_bytes(data=data, mime_type="image/jpeg") for data in self._fetch_images(image_urls)]
        response = client.models.generate_content(
            model=self.model,
            contents=[*parts, prompt.user],
            config={
                "system_instruction": prompt.system,
                "max_output_tokens": self.max_output_tokens,
                "response_mime_type": "application/json",
            },
        )

        if not response.text:
            raise RuntimeError("Gemini returned no text, the request may have been filtered.")

        listing = parse_listing(response.text, provider=self.provider_name, model=self.model)
        usage = getattr(response, "usage_metadata", None)
        listing.tokens_used = getattr(usage, "total_token_count", None)
        return listing


def get_writer(name: str, **kwargs) -> ListingWriter:
    """Factory function to get a listing writer by provider name."""
    writers: dict[str, type[ListingWriter]] = {
        "openai": OpenAIListingWriter,
        "gemini": GeminiListingWriter,
    }
    if name not in writers:
        raise ValueError(f"Unknown listing writer: {name}. Available: {list(writers.keys())}")
    return writers[name](**kwargs)
