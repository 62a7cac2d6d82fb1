from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.governor import UsageGovernor
from core.maintenance import cleanup_rate_limits, emergency_brake, reset_counts
from core.models import AccountProfile
from core.store import InMemoryStore, StoreError

NOW = datetime(2025, 4, 2, 9, 0, tzinfo=timezone.utc)


class BrokenSettings(InMemoryStore):
    def set_kill_switch(self, switch):
        raise StoreError("system_settings unavailable")


def call(secret="s3cret", method="POST", body=None):
    headers = {"Authorization": f"Bearer {secret}"} if secret else {}
    return {"method": method, "headers": headers, "body": json.dumps(body) if body is not None else None}


def test_cleanup_requires_the_cron_secret():
    store = InMemoryStore()
    governor = UsageGovernor(store, store, store, clock=lambda: NOW)
    assert cleanup_rate_limits(call(secret="wrong"), governor, "s3cret")["statusCode"] == 401
    assert cleanup_rate_limits(call(secret=None), governor, "s3cret")["statusCode"] == 401
    assert cleanup_rate_limits(call(), governor, "")["statusCode"] == 401


def test_cleanup_sweeps_expired_counters():
    store = InMemoryStore()
    recorder = UsageGovernor(store, store, store, clock=lambda: NOW - timedelta(days=2))
    recorder.record_success("acct", "free")
    governor = UsageGovernor(store, store, store, clock=lambda: NOW)

    response = cleanup_rate_limits(call(), governor, "s3cret")

    assert response["statusCode"] == 200
    assert json.loads(response["body"])["deleted"] == 2
    assert store.counters == {}


def test_reset_counts_route():
    store = InMemoryStore()
    store.upsert_profile(AccountProfile("acct", api_calls_this_month=8, last_api_call_reset=datetime(2025, 3, 3)))

    response = reset_counts(call(), store, "s3cret", clock=lambda: NOW)

    assert response["statusCode"] == 200
    assert json.loads(response["body"])["reset"] == 1
    assert store.get_profile("acct").api_calls_this_month == 0


def test_emergency_brake_toggles_kill_switch():
    store = InMemoryStore()

    response = emergency_brake(call(body={"action": "enable", "reason": "cost spike"}), store, "s3cret", clock=lambda: NOW)
    assert response["statusCode"] == 200
    switch = store.get_kill_switch()
    assert switch.enabled is True
    assert switch.reason == "cost spike"
    assert switch.updated_at == NOW

    emergency_brake(call(body={"action": "disable"}), store, "s3cret")
    switch = store.get_kill_switch()
    assert switch.enabled is False
    assert switch.reason == "Manual deactivation"


def test_emergency_brake_validation():
    store = InMemoryStore()
    assert emergency_brake(call(secret="nope", body={"action": "enable"}), store, "s3cret")["statusCode"] == 401
    assert emergency_brake(call(method="GET"), store, "s3cret")["statusCode"] == 405
    assert emergency_brake(call(body={"action": "pause"}), store, "s3cret")["statusCode"] == 400
    assert store.get_kill_switch() is None


def test_emergency_brake_store_failure():
    response = emergency_brake(call(body={"action": "enable"}), BrokenSettings(), "s3cret")
    assert response["statusCode"] == 500
