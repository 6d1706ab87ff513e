import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Optional

from .. import totp
from ..config import SESSION_MIN
from ..errors import GatewayError, InvalidInput, NotFound, Unauthorized
from ..models import ActiveSession, DeviceStatus, LogCategory, LogLevel, UnlockRequest
from ..store import StateStore
from ..utils import utcnow
from ..wg import PeerGateway
from .tokens import TokenManager


class AccessController:
    """
    Abre sesiones: primero admite el peer en WireGuard y solo después
    escribe estado CONNECTED + sesión. Si `wg` falla, el store no cambia.
    """

    def __init__(self, store: StateStore, gateway: PeerGateway, tokens: TokenManager,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.gateway = gateway
        self.tokens = tokens
        self.clock = clock
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def open_session(self, device_id: str, duration_minutes: float, context: str,
                           request_id: Optional[str] = None) -> datetime:
        if duration_minutes <= 0:
            raise InvalidInput("durationMinutes must be positive")
        # admit + commit serializados por dispositivo
        async with self._locks[device_id]:
            device = self.store.get_device(device_id)
            if device is None:
                raise NotFound("Device not found")
            approved_at = self.clock()
            expires_at = approved_at + timedelta(minutes=duration_minutes)
            try:
                await self.gateway.admit(device.public_key, device.allowed_ip)
            except GatewayError as e:
                self.store.add_log(LogCategory.AUTH, LogLevel.ERROR, f"Failed to add peer for {device.name}",
                                   e.details or e.message)
                raise
            self.store.set_device_status(device.id, DeviceStatus.CONNECTED, approved_at)
            self.store.add_session(ActiveSession(
                device_id=device.id,
                request_id=request_id or "manual",
                expires_at=expires_at,
                approved_at=approved_at,
            ))
            self.store.add_log(LogCategory.AUTH, LogLevel.SUCCESS, f"Session opened for {device.name}",
                               f"{context} | Duration {duration_minutes:g}m")
        return expires_at

    # ---------------------------
    # Flujo de aprobación manual
    # ---------------------------

    def request_unlock(self, device_id: str, source_ip: str, reason: str = "Manual unlock") -> UnlockRequest:
        device = self.store.get_device(device_id)
        if device is None:
            raise NotFound("Unknown device")
        req = self.store.add_request(device, source_ip, reason)
        self.store.add_log(LogCategory.AUTH, LogLevel.INFO, f"Unlock requested by {device.id}",
                           f"Source {source_ip} | {reason}")
        return req

    async def approve(self, request_id: str, duration_minutes: float = SESSION_MIN) -> tuple[str, datetime]:
        if duration_minutes <= 0:
            raise InvalidInput("durationMinutes must be positive")
        req = self.store.remove_request(request_id)
        if req is None:
            raise NotFound("Request not found")
        expires_at = await self.open_session(req.device_id, duration_minutes, "Manual approval", req.id)
        return req.device_id, expires_at

    def deny(self, request_id: str) -> UnlockRequest:
        req = self.store.remove_request(request_id)
        if req is None:
            raise NotFound("Request not found")
        self.store.add_log(LogCategory.AUTH, LogLevel.WARN, f"Denied unlock for {req.device_id}")
        return req

    # ---------------------------
    # Token de un solo uso / TOTP
    # ---------------------------

    async def unlock_with_token(self, device_id: str, value: str,
                                duration_minutes: float = SESSION_MIN) -> datetime:
        if duration_minutes <= 0:
            raise InvalidInput("durationMinutes must be positive")
        token = self.tokens.redeem_token(device_id, value)
        return await self.open_session(device_id, duration_minutes, "Token redeem", token.id)

    async def unlock_with_totp(self, device_id: str, code: str,
                               duration_minutes: float = SESSION_MIN) -> datetime:
        device = self.store.get_device(device_id)
        if device is None or not device.totp_secret:
            raise NotFound("Device not found or TOTP not configured")
        if not totp.check(code, device.totp_secret, at=self.clock()):
            self.store.add_log(LogCategory.AUTH, LogLevel.WARN, f"Invalid TOTP for {device.name}")
            raise Unauthorized("Invalid TOTP code")
        return await self.open_session(device_id, duration_minutes, "TOTP unlock", "totp")
