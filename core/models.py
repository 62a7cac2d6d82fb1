"""Data models for the listing generator backend and its usage governor."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from core.windows import as_utc


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    FREE = "free"


class DenialReason(str, Enum):
    KILL_SWITCH_ACTIVE = "kill_switch_active"
    GLOBAL_BUDGET_EXHAUSTED = "global_budget_exhausted"
    MONTHLY_LIMIT_REACHED = "monthly_limit_reached"
    BURST_LIMIT_EXCEEDED = "burst_limit_exceeded"
    DAILY_LIMIT_REACHED = "daily_limit_reached"


# Service-wide protection, independent of any account's tier.
GLOBAL_DAILY_BUDGET_USD = 100.0

# Observed average spend of one generation call.
COST_PER_GENERATION_USD = 0.0201

KILL_SWITCH_KEY = "emergency_brake"


@dataclass
class CustomDailyLimit:
    limit: int
    expires_at: datetime | None = None
    reason: str = ""

    def is_active(self, now: datetime) -> bool:
        """An override only applies while it has a positive limit and a future expiry.

        A limit of 0 means no override and the tier default applies.
        """
        if self.limit <= 0 or self.expires_at is None:
            return False
        return as_utc(now) < as_utc(self.expires_at)


@dataclass
class AccountProfile:
    account_id: str
    subscription_tier: str = "free"
    subscription_status: str = SubscriptionStatus.FREE.value
    api_calls_this_month: int = 0
    last_api_call_reset: datetime | None = None
    custom_limit: CustomDailyLimit | None = None


@dataclass
class UsageCounter:
    account_id: str
    key: str
    window: str
    count: int = 0
    expires_at: datetime | None = None


@dataclass
class GlobalDailyStat:
    date: str
    total_api_calls: int = 0
    estimated_cost: float = 0.0


@dataclass
class KillSwitch:
    enabled: bool = False
    reason: str = ""
    updated_at: datetime | None = None


@dataclass
class RemainingQuota:
    minute: int
    day: int | None
    month: int

    def to_dict(self) -> dict[str, Any]:
        return {"minute": self.minute, "day": self.day, "month": self.month}


@dataclass
class Decision:
    allowed: bool
    tier: str = "free"
    reason: DenialReason | None = None
    remaining: RemainingQuota | None = None
    degraded: bool = False

    @classmethod
    def deny(cls, reason: DenialReason, tier: str = "free") -> Decision:
        return cls(allowed=False, tier=tier, reason=reason)


@dataclass
class RecordOutcome:
    """Result of post-generation bookkeeping.

    The generation itself already succeeded when this is produced; ``failures``
    only lists the bookkeeping steps that could not be persisted.
    """

    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class AuthUser:
    id: str
    email: str | None = None


@dataclass
class GeneratedListing:
    title: str
    description: str
    provider: str = ""
    model: str = ""
    tokens_used: int | None = None
    generation_time_s: float = 0.0
    timestamp: float = field(default_factory=time.time)
