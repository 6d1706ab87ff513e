import time
from collections import deque
from typing import Deque, Dict, Iterable


class InMemoryRateLimiter:
    """Ventana deslizante por clave (dirección del cliente)."""

    def __init__(self, max_requests: int, window_seconds: float, allowlist: Iterable[str] = ()):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.allowlist = set(allowlist)
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = 0.0

    def _prune(self, hits: Deque[float], now: float):
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

    def _sweep(self, now: float):
        # clientes sin peticiones dentro de la ventana salen del mapa
        for key in list(self._hits):
            self._prune(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]
        self._last_sweep = now

    def allow(self, key: str, now: float | None = None) -> bool:
        if key in self.allowlist or self.max_requests <= 0:
            return True
        now = time.monotonic() if now is None else now
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)
        hits = self._hits.setdefault(key, deque())
        self._prune(hits, now)
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def tracked_keys(self) -> int:
        return len(self._hits)
