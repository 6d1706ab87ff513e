import logging
from datetime import datetime
from typing import Callable

from pydantic import BaseModel

from ..errors import GatewayError, InvalidInput, NotFound
from ..models import DeviceStatus, LogCategory, LogLevel
from ..store import StateStore
from ..utils import utcnow
from ..wg import PeerGateway

logger = logging.getLogger(__name__)

SETTABLE_STATUSES = {DeviceStatus.OFFLINE, DeviceStatus.LOCKED}


class RevokeResult(BaseModel):
    device_id: str
    sessions_removed: int
    requests_cleared: int
    peer_removed: bool


class RevocationHandler:
    def __init__(self, store: StateStore, gateway: PeerGateway, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.gateway = gateway
        self.clock = clock

    async def revoke(self, device_id: str) -> RevokeResult:
        """
        Borrón y cuenta nueva: quita TODAS las sesiones y solicitudes del
        dispositivo, intenta sacar el peer de wg0 y lo deja OFFLINE.
        Un fallo de wg solo se registra; la revocación se completa igual.
        """
        device = self.store.get_device(device_id)
        if device is None:
            raise NotFound("Device not found")
        sessions = self.store.clear_sessions_for_device(device.id)
        requests = self.store.remove_requests_for_device(device.id)
        peer_removed = True
        try:
            await self.gateway.evict(device.public_key)
        except GatewayError as e:
            peer_removed = False
            logger.warning("Peer removal failed for %s: %s", device.name, e.details or e.message)
        self.store.set_device_status(device.id, DeviceStatus.OFFLINE, self.clock())
        self.store.add_log(
            LogCategory.VPN,
            LogLevel.WARN,
            f"Revoked device {device.name}",
            f"Sessions removed: {len(sessions)}, pending requests cleared: {len(requests)}",
        )
        return RevokeResult(
            device_id=device.id,
            sessions_removed=len(sessions),
            requests_cleared=len(requests),
            peer_removed=peer_removed,
        )

    def set_status(self, device_id: str, status: str) -> DeviceStatus:
        device = self.store.get_device(device_id)
        if device is None:
            raise NotFound("Device not found")
        try:
            new_status = DeviceStatus(status)
        except ValueError:
            new_status = None
        # CONNECTED solo se alcanza abriendo sesión
        if new_status not in SETTABLE_STATUSES:
            raise InvalidInput("Invalid status update")
        self.store.set_device_status(device.id, new_status, self.clock())
        self.store.add_log(LogCategory.VPN, LogLevel.INFO, f"Updated {device.name} status to {new_status.value}")
        return new_status
