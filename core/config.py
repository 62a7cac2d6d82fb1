"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from core.models import COST_PER_GENERATION_USD, GLOBAL_DAILY_BUDGET_USD


def resolve_api_key(explicit: str | None, *env_names: str) -> str:
    """Return the explicit key if given, otherwise the first non-empty env var."""
    if explicit and explicit.strip():
        return explicit.strip()
    for name in env_names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_list(name: str) -> list[str]:
    return [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]


@dataclass
class Settings:
    supabase_url: str = ""
    supabase_service_key: str = ""
    writer_provider: str = "openai"
    openai_api_key: str = ""
    gemini_api_key: str = ""
    model: str = ""
    allowed_origins: list[str] = field(default_factory=list)
    cron_secret: str = ""
    admin_secret: str = ""
    global_daily_budget_usd: float = GLOBAL_DAILY_BUDGET_USD
    cost_per_generation_usd: float = COST_PER_GENERATION_USD
    http_timeout_s: float = 30.0

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            supabase_url=resolve_api_key(None, "VERCEL_APP_SUPABASE_URL", "SUPABASE_URL").rstrip("/"),
            supabase_service_key=resolve_api_key(None, "SUPABASE_SERVICE_ROLE_KEY"),
            writer_provider=os.environ.get("LISTING_WRITER", "openai").strip().lower() or "openai",
            openai_api_key=resolve_api_key(None, "VERCEL_APP_OPENAI_API_KEY", "OPENAI_API_KEY"),
            gemini_api_key=resolve_api_key(None, "GEMINI_API_KEY", "GOOGLE_API_KEY"),
            model=os.environ.get("LISTING_MODEL", "").strip(),
            allowed_origins=_env_list("VERCEL_APP_ALLOWED_ORIGINS"),
            cron_secret=os.environ.get("CRON_SECRET", ""),
            admin_secret=os.environ.get("ADMIN_SECRET", ""),
            global_daily_budget_usd=_env_float("GLOBAL_DAILY_BUDGET_USD", GLOBAL_DAILY_BUDGET_USD),
            cost_per_generation_usd=_env_float("COST_PER_GENERATION_USD", COST_PER_GENERATION_USD),
            http_timeout_s=_env_float("HTTP_TIMEOUT_S", 30.0),
        )

    def require_supabase(self) -> None:
        if not self.supabase_url or not self.supabase_service_key:
            raise ValueError(
                "Supabase configuration is incomplete. "
                "Set VERCEL_APP_SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY."
            )
