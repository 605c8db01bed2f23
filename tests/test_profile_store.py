import json
from dataclasses import replace

import pytest

from guardian.core.exceptions import RedisUnavailableException
from guardian.infrastructure.cache.redis_client import RedisManager
from guardian.services.profile_store import (
    MAX_WRITE_RETRIES,
    PROFILE_TTL_SEC,
    ProfileStore,
    UserProfile,
)


@pytest.mark.asyncio
async def test_unknown_user_gets_default_profile(fake_redis):
    profile = await ProfileStore(fake_redis).get("ghost")

    assert profile.user_id == "ghost"
    assert profile.tx_count == 0
    assert not profile.has_history


@pytest.mark.asyncio
async def test_redis_failure_returns_default_profile(failing_redis):
    profile = await ProfileStore(failing_redis).get("user-1")
    assert profile == UserProfile(user_id="user-1")


@pytest.mark.asyncio
async def test_corrupt_json_returns_default_profile(fake_redis):
    fake_redis.data["profile:user:user-1"] = b"{not json"
    profile = await ProfileStore(fake_redis).get("user-1")
    assert profile.tx_count == 0


@pytest.mark.asyncio
async def test_stored_profile_is_read_back(fake_redis, seasoned_profile):
    fake_redis.data["profile:user:user-123"] = seasoned_profile.to_json().encode()
    assert await ProfileStore(fake_redis).get("user-123") == seasoned_profile


@pytest.mark.asyncio
async def test_record_transaction_updates_running_statistics(fake_redis):
    store = ProfileStore(fake_redis)
    for amount in (100.0, 200.0, 300.0):
        updated = await store.record_transaction(
            user_id     = "user-1",
            amount      = amount,
            currency    = "MXN",
            hour        = 10,
            timestamp   = 1_700_000_000.0,
            device_id   = "dev-1",
            receiver_id = "r-1",
            country     = "MX",
        )

    assert updated.tx_count == 3
    assert updated.avg_amount == pytest.approx(200.0)
    # desviación poblacional de (100, 200, 300)
    assert updated.std_amount == pytest.approx(81.6496580927726)
    assert updated.primary_currency == "MXN"
    assert updated.home_country == "MX"
    assert updated.typical_hours == frozenset({10})

    stored = json.loads(fake_redis.data["profile:user:user-1"])
    assert stored["tx_count"] == 3


@pytest.mark.asyncio
async def test_record_transaction_returns_none_when_redis_fails(failing_redis):
    result = await ProfileStore(failing_redis).record_transaction(
        user_id="user-1", amount=10.0, currency="USD", hour=9, timestamp=0.0,
    )
    assert result is None


def test_apply_transaction_does_not_mutate_snapshot(seasoned_profile):
    updated = ProfileStore.apply_transaction(
        seasoned_profile,
        amount      = 100.0,
        currency    = "USD",
        hour        = 23,
        timestamp   = 1_800_000_000.0,
        device_id   = "dev-new",
    )
    assert "dev-new" not in seasoned_profile.known_devices
    assert "dev-new" in updated.known_devices
    assert 23 in updated.typical_hours
    assert updated.tx_count == seasoned_profile.tx_count + 1


def test_require_client_without_connection_raises():
    with pytest.raises(RedisUnavailableException):
        RedisManager().require_client()


@pytest.mark.asyncio
async def test_store_without_connection_degrades_to_default():
    # Sin cliente inyectado usa el RedisManager global, que aquí no conectó
    profile = await ProfileStore().get("user-1")
    assert profile == UserProfile(user_id="user-1")


def test_profile_ttl_is_ninety_days():
    assert PROFILE_TTL_SEC == 90 * 24 * 3600


async def _record(store, user_id="user-123", amount=100.0):
    return await store.record_transaction(
        user_id     = user_id,
        amount      = amount,
        currency    = "USD",
        hour        = 12,
        timestamp   = 1_773_000_000.0,
        device_id   = "dev-abc",
        receiver_id = "merchant-9",
    )


@pytest.mark.asyncio
async def test_read_error_does_not_overwrite_history(fake_redis, seasoned_profile):
    key = "profile:user:user-123"
    fake_redis.data[key] = seasoned_profile.to_json().encode()
    fake_redis.fail_reads = 1
    store = ProfileStore(fake_redis)

    assert await _record(store) is None
    assert json.loads(fake_redis.data[key])["tx_count"] == 150

    updated = await _record(store)
    assert updated.tx_count == 151
    assert json.loads(fake_redis.data[key])["tx_count"] == 151


@pytest.mark.asyncio
async def test_concurrent_write_is_retried_on_latest_profile(fake_redis, seasoned_profile):
    key = "profile:user:user-123"
    fake_redis.data[key] = seasoned_profile.to_json().encode()
    # Otro writer agrega una transacción entre nuestra lectura y el EXEC
    concurrent = ProfileStore.apply_transaction(
        seasoned_profile, amount=50.0, currency="USD", hour=9, timestamp=1_772_000_000.0,
    )
    fake_redis.interleaved_writes.append(concurrent.to_json().encode())

    updated = await _record(ProfileStore(fake_redis))

    assert updated.tx_count == 152
    assert json.loads(fake_redis.data[key])["tx_count"] == 152


@pytest.mark.asyncio
async def test_write_gives_up_after_repeated_conflicts(fake_redis, seasoned_profile):
    key = "profile:user:user-123"
    fake_redis.data[key] = seasoned_profile.to_json().encode()
    fake_redis.interleaved_writes.extend(
        replace(seasoned_profile, tx_count=200 + i).to_json().encode()
        for i in range(MAX_WRITE_RETRIES)
    )

    assert await _record(ProfileStore(fake_redis)) is None
    assert json.loads(fake_redis.data[key])["tx_count"] == 200 + MAX_WRITE_RETRIES - 1


def test_first_seen_is_kept_across_updates():
    profile = UserProfile(user_id="u1")
    profile = ProfileStore.apply_transaction(
        profile, amount=10.0, currency="USD", hour=9, timestamp=1_000.0,
    )
    profile = ProfileStore.apply_transaction(
        profile, amount=10.0, currency="USD", hour=9, timestamp=90_000.0,
    )
    assert profile.first_seen_ts == 1_000.0
    assert profile.age_days(1_000.0 + 86400 * 10) == pytest.approx(10.0)
