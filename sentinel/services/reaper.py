import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel

from ..config import REAPER_INTERVAL_SECONDS
from ..errors import GatewayError
from ..models import DeviceStatus, LogCategory, LogLevel
from ..store import StateStore
from ..utils import utcnow
from ..wg import PeerGateway

logger = logging.getLogger(__name__)


class SweepResult(BaseModel):
    pairings: int = 0
    tokens: int = 0
    sessions: int = 0
    eviction_failures: int = 0


class ExpiryReaper:
    """Barrido periódico de emparejamientos, tokens y sesiones caducados."""

    def __init__(self, store: StateStore, gateway: PeerGateway,
                 interval: float = REAPER_INTERVAL_SECONDS, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.gateway = gateway
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self.clock()
        result = SweepResult()

        for p in self.store.expire_pairings(now):
            result.pairings += 1
            self.store.add_log(LogCategory.AUTH, LogLevel.WARN, f"Pairing expired for {p.device_name}",
                               f"Code {p.pairing_code}")

        for t in self.store.expire_tokens(now):
            result.tokens += 1
            self.store.add_log(LogCategory.AUTH, LogLevel.WARN, f"Token expired for {t.device_id}",
                               f"Token {t.token}")

        # las sesiones ya salen del store antes de tocar wg0
        for session in self.store.expire_sessions(now):
            device = self.store.get_device(session.device_id)
            if device is None:
                continue
            result.sessions += 1
            try:
                await self.gateway.evict(device.public_key)
            except GatewayError as e:
                result.eviction_failures += 1
                self.store.add_log(LogCategory.SYSTEM, LogLevel.ERROR, f"Failed to remove peer for {device.name}",
                                   e.details or e.message)
                continue
            self.store.set_device_status(device.id, DeviceStatus.LOCKED, self.clock())
            self.store.add_log(LogCategory.AUTH, LogLevel.WARN, f"Session expired for {device.name}",
                               f"Request {session.request_id}")
        return result

    async def run(self):
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Expiry sweep failed")
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="expiry-reaper")
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
