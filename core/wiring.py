"""Builds the service objects used by the serverless entrypoints."""

from __future__ import annotations

import logging

from core.config import Settings
from core.generation import GenerationService
from core.governor import UsageGovernor
from core.supabase import SupabaseStore
from core.writers import get_writer

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> SupabaseStore:
    settings.require_supabase()
    return SupabaseStore(settings.supabase_url, settings.supabase_service_key, timeout=settings.http_timeout_s)


def build_governor(settings: Settings, store: SupabaseStore) -> UsageGovernor:
    return UsageGovernor(
        counters=store,
        stats=store,
        settings=store,
        global_daily_budget_usd=settings.global_daily_budget_usd,
        cost_per_generation_usd=settings.cost_per_generation_usd,
    )


def build_generation_service(settings: Settings) -> GenerationService:
    store = build_store(settings)

    writer_kwargs = {}
    if settings.model:
        writer_kwargs["model"] = settings.model
    if settings.writer_provider == "gemini":
        writer_kwargs["api_key"] = settings.gemini_api_key
    else:
        writer_kwargs["api_key"] = settings.openai_api_key
    writer = get_writer(settings.writer_provider, **writer_kwargs)
    logger.info("Generation service using %s writer model=%s", writer.provider_name, writer.model)

    return GenerationService(
        auth=store,
        profiles=store,
        governor=build_governor(settings, store),
        writer=writer,
        request_logs=store,
        allowed_origins=settings.allowed_origins,
    )
