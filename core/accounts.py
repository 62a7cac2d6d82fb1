"""Account profile housekeeping done by callers around the governor."""

from __future__ import annotations

import logging
from datetime import datetime

from core.models import AccountProfile, SubscriptionStatus
from core.store import ProfileStore
from core.tiers import Tier
from core.windows import as_utc, month_start

logger = logging.getLogger(__name__)


def load_or_create_profile(profiles: ProfileStore, account_id: str, now: datetime) -> AccountProfile:
    """Fetch the account's profile, creating it on first access.

    A profile without a reset timestamp is treated as new: its count is zeroed
    and the cycle starts now, but any stored tier and status are kept.
    """
    profile = profiles.get_profile(account_id)
    if profile is not None and profile.last_api_call_reset is not None:
        return profile

    created = AccountProfile(
        account_id=account_id,
        subscription_tier=profile.subscription_tier if profile else Tier.FREE.value,
        subscription_status=profile.subscription_status if profile else SubscriptionStatus.FREE.value,
        api_calls_this_month=0,
        last_api_call_reset=now,
        custom_limit=profile.custom_limit if profile else None,
    )
    profiles.upsert_profile(created)
    logger.info("Initialized profile for account=%s", account_id)
    return created


def needs_monthly_rollover(profile: AccountProfile, now: datetime) -> bool:
    last = profile.last_api_call_reset
    if last is None:
        return True
    last, now = as_utc(last), as_utc(now)
    return (now.year, now.month) > (last.year, last.month)


def apply_monthly_rollover(profiles: ProfileStore, profile: AccountProfile, now: datetime) -> bool:
    """Start a new monthly cycle if ``now`` is in a later calendar month.

    Returns True when the profile was reset. The in-memory profile is reset even
    if persisting the reset fails.
    """
    if not needs_monthly_rollover(profile, now):
        return False

    profile.api_calls_this_month = 0
    profile.last_api_call_reset = now
    try:
        profiles.update_profile(profile.account_id, api_calls_this_month=0, last_api_call_reset=now)
    except Exception as e:
        logger.error("Failed to persist monthly reset for account=%s: %s", profile.account_id, e)
    else:
        logger.info("Monthly usage reset for account=%s", profile.account_id)
    return True


def increment_monthly_count(profiles: ProfileStore, profile: AccountProfile) -> bool:
    """Write back the caller's snapshot plus one. Failures are logged, not raised."""
    try:
        profiles.update_profile(profile.account_id, api_calls_this_month=profile.api_calls_this_month + 1)
    except Exception as e:
        logger.error("Failed to increment monthly count for account=%s: %s", profile.account_id, e)
        return False
    return True


def reset_stale_monthly_counts(profiles: ProfileStore, now: datetime) -> int:
    """Batch rollover for every profile whose cycle began before this month."""
    reset = profiles.reset_monthly_counts(month_start(now), now)
    logger.info("Monthly usage reset for %d profile(s)", reset)
    return reset
