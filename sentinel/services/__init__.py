from datetime import datetime
from typing import Callable

from ..store import StateStore
from ..utils import utcnow
from ..wg import PeerGateway
from .access import AccessController
from .health import HealthMonitor
from .pairing import PairingManager
from .reaper import ExpiryReaper
from .revocation import RevocationHandler
from .tokens import TokenManager


class Services:
    """Agrupa los gestores que comparten el mismo store y gateway."""

    def __init__(self, store: StateStore, gateway: PeerGateway, monitor: HealthMonitor,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.gateway = gateway
        self.monitor = monitor
        self.clock = clock
        self.pairing = PairingManager(store, clock)
        self.tokens = TokenManager(store, clock)
        self.access = AccessController(store, gateway, self.tokens, clock)
        self.revocation = RevocationHandler(store, gateway, clock)
        self.reaper = ExpiryReaper(store, gateway, clock=clock)


__all__ = [
    "AccessController",
    "ExpiryReaper",
    "HealthMonitor",
    "PairingManager",
    "RevocationHandler",
    "Services",
    "TokenManager",
]
