import secrets
from datetime import datetime, timedelta
from typing import Callable

from ..config import TOKEN_TTL_SEC
from ..errors import InvalidInput, InvalidToken, NotFound
from ..models import LogCategory, LogLevel, UnlockToken
from ..store import StateStore
from ..utils import utcnow


class TokenManager:
    """Tokens de desbloqueo de un solo uso, emitidos por el propietario."""

    def __init__(self, store: StateStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def create_token(self, device_id: str, ttl_seconds: int = TOKEN_TTL_SEC) -> UnlockToken:
        device = self.store.get_device(device_id)
        if device is None:
            raise NotFound("Device not found")
        if ttl_seconds <= 0:
            raise InvalidInput("ttlSeconds must be positive")
        now = self.clock()
        token = UnlockToken(
            device_id=device_id,
            token=secrets.token_hex(4),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        self.store.add_token(token)
        self.store.add_log(LogCategory.AUTH, LogLevel.INFO, f"One-time token issued for {device.name}",
                           f"TTL {ttl_seconds}s")
        return token

    def redeem_token(self, device_id: str, value: str) -> UnlockToken:
        matched = self.store.consume_token(device_id, value, self.clock())
        if matched is None:
            raise InvalidToken("Invalid or expired token")
        return matched
