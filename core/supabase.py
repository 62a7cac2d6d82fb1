"""Supabase-backed storage and auth over the PostgREST and GoTrue HTTP APIs."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from core.models import (
    KILL_SWITCH_KEY,
    AccountProfile,
    AuthUser,
    CustomDailyLimit,
    GlobalDailyStat,
    KillSwitch,
    UsageCounter,
)
from core.store import (
    AuthBackend,
    CounterStore,
    ProfileStore,
    RequestLogStore,
    SettingsStore,
    StatsStore,
    StoreError,
)
from core.windows import as_utc, utc_now

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = (
    "id,subscription_tier,subscription_status,api_calls_this_month,last_api_call_reset,"
    "custom_daily_limit,custom_limit_expires_at,custom_limit_reason"
)


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    text = str(value).replace("Z", "+00:00")
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        raise StoreError(f"Unparseable timestamp from Supabase: {value!r}") from None


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _eq(value: Any) -> str:
    return f"eq.{value}"


class SupabaseStore(ProfileStore, CounterStore, StatsStore, SettingsStore, RequestLogStore, AuthBackend):
    """All persistent state of the service, stored in Supabase tables."""

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not url or not service_key:
            raise ValueError("Supabase URL and service role key are required.")
        self.url = url.rstrip("/")
        self.service_key = service_key
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SupabaseStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self.url}/rest/v1/{table}"
        try:
            resp = self._client.request(method, url, params=params, json=json, headers=self._headers(prefer))
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Supabase {method} {table} failed with {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Supabase {method} {table} failed: {e}") from e

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"Supabase {method} {table} returned invalid JSON") from e

    def _select_one(self, table: str, filters: dict[str, str], columns: str = "*") -> dict[str, Any] | None:
        params = {**filters, "select": columns, "limit": "1"}
        rows = self._request("GET", table, params=params) or []
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, account_id: str) -> AccountProfile | None:
        row = self._select_one("profiles", {"id": _eq(account_id)}, PROFILE_COLUMNS)
        if row is None:
            return None

        custom_limit = None
        if row.get("custom_daily_limit") is not None:
            custom_limit = CustomDailyLimit(
                limit=int(row["custom_daily_limit"]),
                expires_at=_parse_ts(row.get("custom_limit_expires_at")),
                reason=row.get("custom_limit_reason") or "",
            )

        return AccountProfile(
            account_id=row["id"],
            subscription_tier=row.get("subscription_tier") or "free",
            subscription_status=row.get("subscription_status") or "free",
            api_calls_this_month=int(row.get("api_calls_this_month") or 0),
            last_api_call_reset=_parse_ts(row.get("last_api_call_reset")),
            custom_limit=custom_limit,
        )

    def upsert_profile(self, profile: AccountProfile) -> None:
        row = {
            "id": profile.account_id,
            "subscription_tier": profile.subscription_tier,
            "subscription_status": profile.subscription_status,
            "api_calls_this_month": profile.api_calls_this_month,
            "last_api_call_reset": _iso(profile.last_api_call_reset),
        }
        self._request(
            "POST", "profiles",
            params={"on_conflict": "id"},
            json=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def update_profile(self, account_id: str, **fields: Any) -> None:
        row = {name: _iso(value) if isinstance(value, datetime) else value for name, value in fields.items()}
        self._request("PATCH", "profiles", params={"id": _eq(account_id)}, json=row, prefer="return=minimal")

    def reset_monthly_counts(self, reset_before: datetime, now: datetime) -> int:
        rows = self._request(
            "PATCH", "profiles",
            params={"last_api_call_reset": f"lt.{_iso(reset_before)}", "select": "id"},
            json={"api_calls_this_month": 0, "last_api_call_reset": _iso(now)},
            prefer="return=representation",
        )
        return len(rows or [])

    # ------------------------------------------------------------------
    # Usage counters
    # ------------------------------------------------------------------

    def get_counter(self, account_id: str, key: str) -> UsageCounter | None:
        row = self._select_one(
            "rate_limits",
            {"key": _eq(key), "user_id": _eq(account_id)},
            "key,user_id,count,window_type,expires_at",
        )
        if row is None:
            return None
        return UsageCounter(
            account_id=row["user_id"],
            key=row["key"],
            window=row.get("window_type") or "",
            count=int(row.get("count") or 0),
            expires_at=_parse_ts(row.get("expires_at")),
        )

    def insert_counter(self, counter: UsageCounter) -> None:
        now = _iso(utc_now())
        self._request(
            "POST", "rate_limits",
            json={
                "key": counter.key,
                "user_id": counter.account_id,
                "count": counter.count,
                "window_type": counter.window,
                "expires_at": _iso(counter.expires_at),
                "created_at": now,
                "updated_at": now,
            },
            prefer="return=minimal",
        )

    def update_counter(self, account_id: str, key: str, count: int, expires_at: datetime) -> None:
        self._request(
            "PATCH", "rate_limits",
            params={"key": _eq(key), "user_id": _eq(account_id)},
            json={"count": count, "expires_at": _iso(expires_at), "updated_at": _iso(utc_now())},
            prefer="return=minimal",
        )

    def delete_counters_expired_before(self, moment: datetime) -> int:
        rows = self._request(
            "DELETE", "rate_limits",
            params={"expires_at": f"lt.{_iso(moment)}", "select": "key"},
            prefer="return=representation",
        )
        return len(rows or [])

    # ------------------------------------------------------------------
    # Global stats
    # ------------------------------------------------------------------

    def get_daily_stat(self, date: str) -> GlobalDailyStat | None:
        row = self._select_one("daily_stats", {"date": _eq(date)}, "date,total_api_calls,estimated_cost")
        if row is None:
            return None
        return GlobalDailyStat(
            date=row["date"],
            total_api_calls=int(row.get("total_api_calls") or 0),
            estimated_cost=float(row.get("estimated_cost") or 0.0),
        )

    def upsert_daily_stat(self, stat: GlobalDailyStat) -> None:
        self._request(
            "POST", "daily_stats",
            params={"on_conflict": "date"},
            json={
                "date": stat.date,
                "total_api_calls": stat.total_api_calls,
                "estimated_cost": stat.estimated_cost,
                "updated_at": _iso(utc_now()),
            },
            prefer="resolution=merge-duplicates,return=minimal",
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_kill_switch(self) -> KillSwitch | None:
        row = self._select_one("system_settings", {"key": _eq(KILL_SWITCH_KEY)}, "value,reason,updated_at")
        if row is None:
            return None
        return KillSwitch(
            enabled=str(row.get("value")).lower() == "true",
            reason=row.get("reason") or "",
            updated_at=_parse_ts(row.get("updated_at")),
        )

    def set_kill_switch(self, switch: KillSwitch) -> None:
        self._request(
            "POST", "system_settings",
            params={"on_conflict": "key"},
            json={
                "key": KILL_SWITCH_KEY,
                "value": "true" if switch.enabled else "false",
                "reason": switch.reason,
                "updated_at": _iso(switch.updated_at or utc_now()),
            },
            prefer="resolution=merge-duplicates,return=minimal",
        )

    # ------------------------------------------------------------------
    # Request logs
    # ------------------------------------------------------------------

    def insert_request_log(self, row: dict[str, Any]) -> None:
        self._request("POST", "api_logs", json=row, prefer="return=minimal")

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def get_user(self, token: str) -> AuthUser | None:
        """Resolve a user's access token. Invalid or expired tokens return None."""
        headers = {"apikey": self.service_key, "Authorization": f"Bearer {token}"}
        try:
            resp = self._client.get(f"{self.url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as e:
            raise StoreError(f"Supabase auth lookup failed: {e}") from e

        if resp.status_code in (401, 403, 404):
            logger.info("Token rejected by Supabase auth (%d)", resp.status_code)
            return None
        try:
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise StoreError(f"Supabase auth lookup failed: {e}") from e

        if not data or not data.get("id"):
            return None
        return AuthUser(id=data["id"], email=data.get("email"))
