import asyncio
import logging
import math
import os
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from ..config import HEALTH_INTERVAL_SECONDS, HEALTH_TARGET
from ..utils import utcnow

logger = logging.getLogger(__name__)

HISTORY_SIZE = 50
_TIME_RE = re.compile(r"time=([\d.]+)")
_LOSS_RE = re.compile(r"(\d+(?:\.\d+)?)%\s+packet loss")


class PingStats(BaseModel):
    average_ms: float = 0.0
    jitter_ms: float = 0.0
    packet_loss: float = 0.0


class LatencyPoint(BaseModel):
    timestamp: datetime
    ping: float
    jitter: float
    packet_loss: Optional[float] = None


class HealthSnapshot(BaseModel):
    cpu_usage: float
    ram_usage: float
    uptime: str
    active_tunnels: int
    latency: List[LatencyPoint]
    packet_loss: Optional[float] = None


def parse_ping(output: str) -> PingStats:
    times = [float(m) for m in _TIME_RE.findall(output)]
    loss_match = _LOSS_RE.search(output)
    loss = float(loss_match.group(1)) if loss_match else 0.0
    if not times:
        return PingStats(packet_loss=loss)
    avg = sum(times) / len(times)
    variance = sum((t - avg) ** 2 for t in times) / max(len(times) - 1, 1)
    return PingStats(average_ms=round(avg, 1), jitter_ms=round(math.sqrt(variance), 1), packet_loss=loss)


async def run_ping(target: str) -> PingStats:
    try:
        proc = await asyncio.create_subprocess_exec(
            "ping", "-c", "3", target,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        out, _ = await proc.communicate()
    except OSError:
        return PingStats(packet_loss=100.0)
    stats = parse_ping(out.decode(errors="ignore"))
    if proc.returncode != 0 and stats.average_ms == 0:
        return PingStats(packet_loss=100.0)
    return stats


def _cpu_usage() -> float:
    try:
        load = os.getloadavg()[0]
    except OSError:
        return 0.0
    return round(min(100.0, load / (os.cpu_count() or 1) * 100), 1)


def _ram_usage() -> float:
    try:
        total = os.sysconf("SC_PHYS_PAGES")
        free = os.sysconf("SC_AVPHYS_PAGES")
    except (ValueError, OSError):
        return 0.0
    if total <= 0:
        return 0.0
    return round((total - free) / total * 100, 1)


def _uptime() -> str:
    try:
        seconds = float(Path("/proc/uptime").read_text().split()[0])
    except (OSError, ValueError, IndexError):
        return "0d 0h"
    return f"{int(seconds // 86400)}d {int(seconds % 86400 // 3600)}h"


class HealthMonitor:
    """Sonda de latencia en segundo plano + lectura de CPU/RAM del host."""

    def __init__(self, target: str = HEALTH_TARGET, interval: float = HEALTH_INTERVAL_SECONDS):
        self.target = target
        self.interval = interval
        self.history: List[LatencyPoint] = []
        self._task: Optional[asyncio.Task] = None

    def record(self, stats: PingStats, at: Optional[datetime] = None):
        self.history.append(LatencyPoint(
            timestamp=at or utcnow(),
            ping=stats.average_ms,
            jitter=stats.jitter_ms,
            packet_loss=stats.packet_loss,
        ))
        if len(self.history) > HISTORY_SIZE:
            del self.history[: len(self.history) - HISTORY_SIZE]

    async def poll(self):
        self.record(await run_ping(self.target))

    async def run(self):
        while True:
            try:
                await self.poll()
            except Exception:
                logger.exception("Health probe failed")
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="health-probe")
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

    def snapshot(self, active_tunnels: int) -> HealthSnapshot:
        return HealthSnapshot(
            cpu_usage=_cpu_usage(),
            ram_usage=_ram_usage(),
            uptime=_uptime(),
            active_tunnels=active_tunnels,
            latency=[p.model_copy() for p in self.history],
            packet_loss=self.history[-1].packet_loss if self.history else None,
        )
