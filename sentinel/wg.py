import asyncio
import logging
from datetime import datetime
from typing import Protocol, Tuple

import docker
from docker.errors import DockerException

from .config import ACTIVE_WINDOW_SECONDS, WG_CONTAINER, WG_INTERFACE, WG_KEEPALIVE, WG_MODE
from .errors import GatewayError

logger = logging.getLogger(__name__)


class PeerGateway(Protocol):
    async def admit(self, public_key: str, allowed_ip: str) -> None: ...

    async def evict(self, public_key: str) -> None: ...

    async def count_active(self, now: datetime, active_window_seconds: int = ACTIVE_WINDOW_SECONDS) -> int: ...


def count_recent_handshakes(dump: str, now: datetime, active_window_seconds: int = ACTIVE_WINDOW_SECONDS) -> int:
    """
    Cuenta peers con handshake reciente a partir de la salida de
    `wg show <iface> latest-handshakes` ("<pubkey>\\t<epoch>" por línea).
    """
    epoch_now = int(now.timestamp())
    active = 0
    for line in dump.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        try:
            handshake = int(parts[1])
        except ValueError:
            continue
        # 0 = nunca ha hecho handshake
        if handshake and epoch_now - handshake <= active_window_seconds:
            active += 1
    return active


class WireGuardGateway:
    """
    Tabla de peers de wg0. En modo "host" ejecuta `wg` local; en modo
    "container" lo ejecuta dentro del contenedor WireGuard vía Docker SDK.
    """

    def __init__(self, interface: str = WG_INTERFACE, mode: str = WG_MODE,
                 container: str = WG_CONTAINER, keepalive: int = WG_KEEPALIVE):
        if mode not in {"host", "container"}:
            raise ValueError(f"invalid WG_MODE: {mode}")
        self.interface = interface
        self.mode = mode
        self.container = container
        self.keepalive = keepalive

    def _exec_in_container(self, cmd: list[str]) -> Tuple[int, str]:
        try:
            c = docker.from_env().containers.get(self.container)
            res = c.exec_run(cmd, stdout=True, stderr=True)
        except DockerException as e:
            raise GatewayError(f"docker exec on '{self.container}' failed", str(e)) from e
        out = res.output.decode(errors="ignore") if isinstance(res.output, (bytes, bytearray)) else str(res.output)
        return res.exit_code, out

    async def _exec_local(self, cmd: list[str]) -> Tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            # no existe, sin permiso de ejecución, etc.
            raise GatewayError("wg could not be executed", str(e)) from e
        out, _ = await proc.communicate()
        return proc.returncode, out.decode(errors="ignore")

    async def _run(self, cmd: list[str]) -> str:
        if self.mode == "container":
            try:
                code, out = await asyncio.to_thread(self._exec_in_container, cmd)
            except GatewayError:
                raise
            except Exception as e:
                # p.ej. timeout de requests contra el daemon de docker
                raise GatewayError(f"docker exec on '{self.container}' failed", str(e)) from e
        else:
            code, out = await self._exec_local(cmd)
        if code != 0:
            raise GatewayError(f"{' '.join(cmd[:3])} failed", out.strip() or f"exit code {code}")
        return out

    async def ensure_available(self) -> str:
        return (await self._run(["wg", "--version"])).strip()

    async def admit(self, public_key: str, allowed_ip: str) -> None:
        await self._run([
            "wg", "set", self.interface,
            "peer", public_key,
            "allowed-ips", allowed_ip,
            "persistent-keepalive", str(self.keepalive),
        ])

    async def evict(self, public_key: str) -> None:
        await self._run(["wg", "set", self.interface, "peer", public_key, "remove"])

    async def count_active(self, now: datetime, active_window_seconds: int = ACTIVE_WINDOW_SECONDS) -> int:
        try:
            dump = await self._run(["wg", "show", self.interface, "latest-handshakes"])
        except GatewayError as e:
            # sin wg no hay túneles que contar
            logger.debug("latest-handshakes unavailable: %s", e.details or e.message)
            return 0
        return count_recent_handshakes(dump, now, active_window_seconds)
