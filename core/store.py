"""Storage interfaces used by the governor and the request handlers.

Backends are injected into their users. Counters are updated read-then-write,
so a backend does not need atomic increments.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from core.models import AccountProfile, AuthUser, GlobalDailyStat, KillSwitch, UsageCounter
from core.windows import as_utc


class StoreError(Exception):
    """Raised when a storage backend cannot complete an operation."""


class ProfileStore(ABC):
    @abstractmethod
    def get_profile(self, account_id: str) -> AccountProfile | None:
        ...

    @abstractmethod
    def upsert_profile(self, profile: AccountProfile) -> None:
        ...

    @abstractmethod
    def update_profile(self, account_id: str, **fields: Any) -> None:
        ...

    @abstractmethod
    def reset_monthly_counts(self, reset_before: datetime, now: datetime) -> int:
        """Zero the monthly count of every profile last reset before ``reset_before``."""


class CounterStore(ABC):
    @abstractmethod
    def get_counter(self, account_id: str, key: str) -> UsageCounter | None:
        ...

    @abstractmethod
    def insert_counter(self, counter: UsageCounter) -> None:
        ...

    @abstractmethod
    def update_counter(self, account_id: str, key: str, count: int, expires_at: datetime) -> None:
        ...

    @abstractmethod
    def delete_counters_expired_before(self, moment: datetime) -> int:
        ...


class StatsStore(ABC):
    @abstractmethod
    def get_daily_stat(self, date: str) -> GlobalDailyStat | None:
        ...

    @abstractmethod
    def upsert_daily_stat(self, stat: GlobalDailyStat) -> None:
        ...


class SettingsStore(ABC):
    @abstractmethod
    def get_kill_switch(self) -> KillSwitch | None:
        ...

    @abstractmethod
    def set_kill_switch(self, switch: KillSwitch) -> None:
        ...


class RequestLogStore(ABC):
    @abstractmethod
    def insert_request_log(self, row: dict[str, Any]) -> None:
        ...


class AuthBackend(ABC):
    @abstractmethod
    def get_user(self, token: str) -> AuthUser | None:
        ...


class InMemoryStore(ProfileStore, CounterStore, StatsStore, SettingsStore, RequestLogStore, AuthBackend):
    """Dictionary-backed store for local runs and tests.

    Copies are handed out and stored so callers never share mutable rows with
    the store, the same as with a remote database.
    """

    def __init__(self) -> None:
        self.profiles: dict[str, AccountProfile] = {}
        self.counters: dict[tuple[str, str], UsageCounter] = {}
        self.daily_stats: dict[str, GlobalDailyStat] = {}
        self.kill_switch: KillSwitch | None = None
        self.request_logs: list[dict[str, Any]] = []
        self.users: dict[str, AuthUser] = {}

    # Profiles

    def get_profile(self, account_id: str) -> AccountProfile | None:
        profile = self.profiles.get(account_id)
        return copy.deepcopy(profile) if profile else None

    def upsert_profile(self, profile: AccountProfile) -> None:
        self.profiles[profile.account_id] = copy.deepcopy(profile)

    def update_profile(self, account_id: str, **fields: Any) -> None:
        profile = self.profiles.get(account_id)
        if profile is None:
            return
        for name, value in fields.items():
            if not hasattr(profile, name):
                raise StoreError(f"Unknown profile field: {name}")
            setattr(profile, name, value)

    def reset_monthly_counts(self, reset_before: datetime, now: datetime) -> int:
        reset = 0
        for profile in self.profiles.values():
            last = profile.last_api_call_reset
            if last is not None and as_utc(last) < as_utc(reset_before):
                profile.api_calls_this_month = 0
                profile.last_api_call_reset = now
                reset += 1
        return reset

    # Counters

    def get_counter(self, account_id: str, key: str) -> UsageCounter | None:
        counter = self.counters.get((account_id, key))
        return copy.deepcopy(counter) if counter else None

    def insert_counter(self, counter: UsageCounter) -> None:
        ident = (counter.account_id, counter.key)
        if ident in self.counters:
            raise StoreError(f"Duplicate counter: {counter.key}")
        self.counters[ident] = copy.deepcopy(counter)

    def update_counter(self, account_id: str, key: str, count: int, expires_at: datetime) -> None:
        counter = self.counters.get((account_id, key))
        if counter is None:
            return
        counter.count = count
        counter.expires_at = expires_at

    def delete_counters_expired_before(self, moment: datetime) -> int:
        expired = [
            ident for ident, counter in self.counters.items()
            if counter.expires_at is not None and as_utc(counter.expires_at) < as_utc(moment)
        ]
        for ident in expired:
            del self.counters[ident]
        return len(expired)

    # Global stats

    def get_daily_stat(self, date: str) -> GlobalDailyStat | None:
        stat = self.daily_stats.get(date)
        return copy.deepcopy(stat) if stat else None

    def upsert_daily_stat(self, stat: GlobalDailyStat) -> None:
        self.daily_stats[stat.date] = copy.deepcopy(stat)

    # Settings

    def get_kill_switch(self) -> KillSwitch | None:
        return copy.deepcopy(self.kill_switch)

    def set_kill_switch(self, switch: KillSwitch) -> None:
        self.kill_switch = copy.deepcopy(switch)

    # Request logs

    def insert_request_log(self, row: dict[str, Any]) -> None:
        self.request_logs.append(dict(row))

    # Auth

    def get_user(self, token: str) -> AuthUser | None:
        return self.users.get(token)
