import base64
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from sentinel.errors import GatewayError
from sentinel.main import create_app
from sentinel.ratelimit import InMemoryRateLimiter
from sentinel.services import HealthMonitor, Services
from sentinel.store import StateStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_key(n: int = 1) -> str:
    return base64.b64encode(bytes([n]) * 32).decode()


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeGateway:
    """Tabla de peers en memoria; registra llamadas y puede fallar a demanda."""

    def __init__(self):
        self.admitted: list[tuple[str, str]] = []
        self.evicted: list[str] = []
        self.fail_admit = False
        self.fail_evict = False
        self.active = 0

    async def admit(self, public_key: str, allowed_ip: str) -> None:
        if self.fail_admit:
            raise GatewayError("wg set wg0 failed", "Unable to modify interface: Operation not permitted")
        self.admitted.append((public_key, allowed_ip))

    async def evict(self, public_key: str) -> None:
        if self.fail_evict:
            raise GatewayError("wg set wg0 failed", "Unable to modify interface: Operation not permitted")
        self.evicted.append(public_key)

    async def count_active(self, now: datetime, active_window_seconds: int = 180) -> int:
        return self.active


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def store(tmp_path, clock) -> StateStore:
    return StateStore(tmp_path / "state.json", clock=clock)


@pytest.fixture()
def services(store, gateway, clock) -> Services:
    return Services(store, gateway, HealthMonitor(), clock)


@pytest.fixture()
def paired(services) -> str:
    """Empareja dev-laptop y devuelve su id."""
    services.pairing.start_pairing("dev-laptop", "Laptop", "linux", "10.10.0.9/32")
    code = services.store.get_pairing("dev-laptop").pairing_code
    services.pairing.complete_pairing("dev-laptop", code, make_key(7))
    return "dev-laptop"


def build_client(store, gateway, clock, api_key: str = "", limiter=None) -> TestClient:
    app = create_app(
        store=store,
        gateway=gateway,
        monitor=HealthMonitor(),
        clock=clock,
        api_key=api_key,
        background=False,
        rate_limiter=limiter or InMemoryRateLimiter(0, 60),
    )
    return TestClient(app)


@pytest.fixture()
def client(store, gateway, clock) -> Generator[TestClient, None, None]:
    with build_client(store, gateway, clock) as c:
        yield c


@pytest.fixture()
def broken_wg_path(tmp_path, monkeypatch):
    """Deja en PATH un `wg` sin permiso de ejecución."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    wg = bin_dir / "wg"
    wg.write_text("#!/bin/sh\nexit 0\n")
    wg.chmod(0o644)
    monkeypatch.setenv("PATH", str(bin_dir))
    return wg
