import asyncio
from datetime import timedelta

from conftest import T0, make_key

from sentinel.errors import GatewayError
from sentinel.models import ActiveSession, DeviceStatus, LogCategory, LogLevel
from sentinel.services import ExpiryReaper
from sentinel.wg import WireGuardGateway


def _new_logs(store, before):
    return store.get_logs(limit=store.log_count() - before)


def test_expired_session_locks_device(services, gateway, clock, paired):
    asyncio.run(services.access.open_session(paired, 30, "x"))
    clock.advance(minutes=30)
    before = services.store.log_count()

    result = asyncio.run(services.reaper.sweep())

    assert result.sessions == 1
    assert services.store.list_sessions() == []
    assert services.store.get_device(paired).status == DeviceStatus.LOCKED
    assert gateway.evicted == [make_key(7)]
    new = _new_logs(services.store, before)
    assert [(l.level, l.message) for l in new] == [(LogLevel.WARN, "Session expired for Laptop")]


def test_unexpired_session_is_kept(services, gateway, clock, paired):
    asyncio.run(services.access.open_session(paired, 30, "x"))
    clock.advance(minutes=29)

    result = asyncio.run(services.reaper.sweep())

    assert result.sessions == 0
    assert len(services.store.list_sessions()) == 1
    assert gateway.evicted == []


def test_eviction_failure_is_logged_and_session_still_removed(services, gateway, clock, paired):
    asyncio.run(services.access.open_session(paired, 30, "x"))
    gateway.fail_evict = True
    clock.advance(hours=1)
    before = services.store.log_count()

    result = asyncio.run(services.reaper.sweep())

    assert result.eviction_failures == 1
    assert services.store.list_sessions() == []
    assert services.store.get_device(paired).status == DeviceStatus.CONNECTED
    (log,) = _new_logs(services.store, before)
    assert (log.category, log.level) == (LogCategory.SYSTEM, LogLevel.ERROR)


def test_session_for_missing_device_is_dropped_silently(services, gateway):
    services.store.add_session(ActiveSession(device_id="dev-ghost", expires_at=T0, approved_at=T0))
    before = services.store.log_count()

    result = asyncio.run(services.reaper.sweep())

    assert result.sessions == 0
    assert services.store.list_sessions() == []
    assert gateway.evicted == []
    assert services.store.log_count() == before


def test_one_failure_does_not_stop_the_sweep(services, gateway, clock, paired):
    asyncio.run(services.access.open_session(paired, 10, "x"))
    asyncio.run(services.access.open_session("dev-pixel8", 10, "x"))
    calls = []

    async def flaky_evict(public_key):
        calls.append(public_key)
        if len(calls) == 1:
            raise GatewayError("wg set wg0 failed")

    gateway.evict = flaky_evict
    clock.advance(minutes=10)

    result = asyncio.run(services.reaper.sweep())

    assert len(calls) == 2
    assert (result.sessions, result.eviction_failures) == (2, 1)
    assert services.store.get_device("dev-pixel8").status == DeviceStatus.LOCKED


def test_expired_pairings_and_tokens_are_swept(services, clock):
    services.pairing.start_pairing("dev-tablet", "Tablet", "android", "10.10.0.5/32", ttl_minutes=1)
    services.tokens.create_token("dev-pixel8", ttl_seconds=30)
    keep = services.tokens.create_token("dev-pixel8", ttl_seconds=600)
    clock.advance(minutes=2)
    before = services.store.log_count()

    result = asyncio.run(services.reaper.sweep())

    assert (result.pairings, result.tokens) == (1, 1)
    assert services.store.list_pairings() == []
    assert [t.id for t in services.store.list_tokens()] == [keep.id]
    messages = sorted(l.message for l in _new_logs(services.store, before))
    assert messages == ["Pairing expired for Tablet", "Token expired for dev-pixel8"]


def test_reaper_task_starts_and_stops(services):
    services.reaper.interval = 0.01

    async def cycle():
        task = services.reaper.start()
        await asyncio.sleep(0.03)
        await services.reaper.stop()
        return task

    task = asyncio.run(cycle())
    assert task.cancelled()


def test_sweep_survives_unexecutable_wg(store, clock, broken_wg_path):

    store.add_session(ActiveSession(device_id="dev-pixel8", expires_at=T0, approved_at=T0))
    store.add_session(ActiveSession(device_id="dev-main-win11", expires_at=T0, approved_at=T0))
    before = store.log_count()
    reaper = ExpiryReaper(store, WireGuardGateway(mode="host"), clock=clock)

    result = asyncio.run(reaper.sweep())

    assert (result.sessions, result.eviction_failures) == (2, 2)
    assert store.list_sessions() == []
    new = _new_logs(store, before)
    assert [(l.category, l.level) for l in new] == [(LogCategory.SYSTEM, LogLevel.ERROR)] * 2
