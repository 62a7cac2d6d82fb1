"""Usage governor gating the paid listing-generation call.

``check_quota`` runs before the model call and never writes. ``record_success``
runs only after the model call succeeded. The two are separate round trips to
the store, so concurrent requests from one account can both pass the check
before either records; such transient over-admission is accepted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from core.models import (
    COST_PER_GENERATION_USD,
    GLOBAL_DAILY_BUDGET_USD,
    AccountProfile,
    Decision,
    DenialReason,
    GlobalDailyStat,
    RecordOutcome,
    RemainingQuota,
    UsageCounter,
)
from core.store import CounterStore, SettingsStore, StatsStore
from core.tiers import Tier, TierPolicy, policy_for, resolve_tier
from core.windows import WindowKind, as_utc, day_stamp, next_boundary, utc_now, window_key

logger = logging.getLogger(__name__)


class UsageGovernor:
    """Admits or denies one billable generation and records it afterwards."""

    def __init__(
        self,
        counters: CounterStore,
        stats: StatsStore,
        settings: SettingsStore,
        global_daily_budget_usd: float = GLOBAL_DAILY_BUDGET_USD,
        cost_per_generation_usd: float = COST_PER_GENERATION_USD,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.counters = counters
        self.stats = stats
        self.settings = settings
        self.global_daily_budget_usd = global_daily_budget_usd
        self.cost_per_generation_usd = cost_per_generation_usd
        self.clock = clock

    def now(self) -> datetime:
        return as_utc(self.clock())

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def check_quota(self, account_id: str, profile: AccountProfile) -> Decision:
        """Decide whether ``account_id`` may run one generation now.

        Checks run in a fixed order and stop at the first denial: kill switch,
        global budget, monthly cap, per-minute burst, daily cap. A failure to
        read any store admits the request.
        """
        tier = resolve_tier(profile.subscription_tier, profile.subscription_status)
        try:
            return self._evaluate(account_id, profile, tier)
        except Exception as e:
            logger.error("Quota check failed for account=%s, allowing request: %s", account_id, e)
            return Decision(allowed=True, tier=tier.value, degraded=True)

    def _evaluate(self, account_id: str, profile: AccountProfile, tier: Tier) -> Decision:
        now = self.now()

        switch = self.settings.get_kill_switch()
        if switch is not None and switch.enabled:
            logger.warning("Kill switch active, denying account=%s (%s)", account_id, switch.reason)
            return Decision.deny(DenialReason.KILL_SWITCH_ACTIVE, tier.value)

        stat = self.stats.get_daily_stat(day_stamp(now))
        if stat is not None and stat.estimated_cost >= self.global_daily_budget_usd:
            logger.warning(
                "Global daily budget exhausted: $%.4f >= $%.2f",
                stat.estimated_cost, self.global_daily_budget_usd,
            )
            return Decision.deny(DenialReason.GLOBAL_BUDGET_EXHAUSTED, tier.value)

        policy = policy_for(tier)

        monthly_used = profile.api_calls_this_month
        if monthly_used >= policy.monthly:
            return Decision.deny(DenialReason.MONTHLY_LIMIT_REACHED, tier.value)

        minute_count = self._current_count(account_id, WindowKind.MINUTE, now)
        if minute_count >= policy.burst_per_minute:
            return Decision.deny(DenialReason.BURST_LIMIT_EXCEEDED, tier.value)

        remaining_day: int | None = None
        if not policy.daily_exempt:
            daily_cap = self.effective_daily_cap(profile, policy, now)
            day_count = self._current_count(account_id, WindowKind.DAY, now)
            if day_count >= daily_cap:
                return Decision.deny(DenialReason.DAILY_LIMIT_REACHED, tier.value)
            remaining_day = max(0, daily_cap - day_count - 1)

        # Counts are pre-increment, so "remaining" already accounts for the
        # generation about to be recorded.
        remaining = RemainingQuota(
            minute=max(0, policy.burst_per_minute - minute_count - 1),
            day=remaining_day,
            month=max(0, policy.monthly - monthly_used - 1),
        )
        return Decision(allowed=True, tier=tier.value, remaining=remaining)

    @staticmethod
    def effective_daily_cap(profile: AccountProfile, policy: TierPolicy, now: datetime) -> int:
        """An unexpired, non-zero per-account override replaces the tier's daily cap."""
        override = profile.custom_limit
        if override is not None and override.is_active(now):
            return override.limit
        return policy.daily

    def _current_count(self, account_id: str, kind: WindowKind, now: datetime) -> int:
        counter = self.counters.get_counter(account_id, window_key(account_id, kind, now))
        return counter.count if counter else 0

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def record_success(self, account_id: str, tier: Tier | str) -> RecordOutcome:
        """Count one successful generation.

        Each step is independent: a failing step is logged and reported in the
        outcome, and the other steps still run. Calling this twice counts twice.
        """
        policy = policy_for(tier)
        now = self.now()
        outcome = RecordOutcome()

        steps: list[tuple[str, Callable[[], None]]] = [
            ("minute_counter", lambda: self._increment_counter(account_id, WindowKind.MINUTE, now)),
        ]
        if not policy.daily_exempt:
            steps.append(("day_counter", lambda: self._increment_counter(account_id, WindowKind.DAY, now)))
        steps.append(("global_stats", lambda: self._add_global_usage(now)))

        for name, step in steps:
            try:
                step()
            except Exception as e:
                logger.error("Usage bookkeeping step %s failed for account=%s: %s", name, account_id, e)
                outcome.failures.append(name)

        if not outcome.ok:
            logger.warning(
                "Recorded generation for account=%s with %d failed step(s): %s",
                account_id, len(outcome.failures), ", ".join(outcome.failures),
            )
        return outcome

    def _increment_counter(self, account_id: str, kind: WindowKind, now: datetime) -> None:
        key = window_key(account_id, kind, now)
        expiry = next_boundary(kind, now)

        existing = self.counters.get_counter(account_id, key)
        if existing is None:
            self.counters.insert_counter(UsageCounter(
                account_id=account_id,
                key=key,
                window=kind.value,
                count=1,
                expires_at=expiry,
            ))
            return

        # Rows written without an expiry get one now.
        self.counters.update_counter(
            account_id,
            key,
            count=existing.count + 1,
            expires_at=existing.expires_at or expiry,
        )

    def _add_global_usage(self, now: datetime) -> None:
        date = day_stamp(now)
        stat = self.stats.get_daily_stat(date) or GlobalDailyStat(date=date)
        stat.total_api_calls += 1
        stat.estimated_cost += self.cost_per_generation_usd
        self.stats.upsert_daily_stat(stat)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Delete counters whose window has closed. Returns how many were removed."""
        now = self.now()
        deleted = self.counters.delete_counters_expired_before(now)
        logger.info("Removed %d expired usage counter(s)", deleted)
        return deleted
