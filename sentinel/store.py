# sentinel/store.py
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import ValidationError

from .config import MAX_LOG_ENTRIES
from .models import (
    ActiveSession,
    Device,
    DeviceStatus,
    LogCategory,
    LogEntry,
    LogLevel,
    PairingSession,
    StateSnapshot,
    UnlockRequest,
    UnlockToken,
    default_state,
)
from .utils import utcnow

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def _copy(items):
    return [i.model_copy(deep=True) for i in items]


class StateStore:
    """
    Estado completo en memoria + snapshot JSON en disco.

    Cada escritura reescribe el fichero entero (tmp + rename). Las lecturas
    devuelven copias: nadie fuera de este objeto toca las colecciones vivas.
    """

    def __init__(self, path: Path | str, clock: Callable[[], datetime] = utcnow,
                 max_logs: int = MAX_LOG_ENTRIES):
        self.path = Path(path)
        self.clock = clock
        self.max_logs = max_logs
        self._state = self._load()

    # ---------------------------
    # Disco
    # ---------------------------

    def _load(self) -> StateSnapshot:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            try:
                return StateSnapshot.model_validate_json(self.path.read_text(encoding="utf-8"))
            except (ValidationError, ValueError) as e:
                # Fichero corrupto o vacío: se aparta y se siembra de nuevo
                broken = self.path.with_name(self.path.name + ".corrupt")
                os.replace(self.path, broken)
                logger.error("State file %s unreadable (%s); moved to %s", self.path, e, broken)
        self._state = default_state()
        self._persist()
        return self._state

    def _persist(self):
        data = self._state.model_dump_json(indent=2)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def snapshot(self, log_limit: int = 200) -> StateSnapshot:
        return StateSnapshot(
            devices=self.list_devices(),
            requests=self.list_requests(),
            sessions=self.list_sessions(),
            logs=self.get_logs(log_limit),
            pairings=self.list_pairings(),
            tokens=self.list_tokens(),
        )

    # ---------------------------
    # Dispositivos
    # ---------------------------

    def list_devices(self) -> List[Device]:
        return _copy(self._state.devices)

    def get_device(self, device_id: str) -> Optional[Device]:
        for d in self._state.devices:
            if d.id == device_id:
                return d.model_copy(deep=True)
        return None

    def upsert_device_from_pairing(self, pairing: PairingSession, public_key: str) -> Device:
        now = self.clock()
        device = next((d for d in self._state.devices if d.id == pairing.device_id), None)
        if device is None:
            device = Device(id=pairing.device_id, name=pairing.device_name, public_key=public_key,
                            allowed_ip=pairing.allowed_ip)
            self._state.devices.append(device)
        device.name = pairing.device_name
        device.type = pairing.device_type
        device.public_key = public_key
        device.allowed_ip = pairing.allowed_ip
        device.totp_secret = pairing.totp_secret
        device.status = DeviceStatus.LOCKED
        device.paired_at = now
        self._persist()
        return device.model_copy(deep=True)

    def set_device_status(self, device_id: str, status: DeviceStatus,
                          last_seen: Optional[datetime] = None) -> Optional[Device]:
        for d in self._state.devices:
            if d.id == device_id:
                d.status = status
                if last_seen is not None:
                    d.last_seen = last_seen
                self._persist()
                return d.model_copy(deep=True)
        return None

    # ---------------------------
    # Solicitudes de desbloqueo
    # ---------------------------

    def list_requests(self) -> List[UnlockRequest]:
        return _copy(self._state.requests)

    def add_request(self, device: Device, request_source_ip: str, reason: str) -> UnlockRequest:
        req = UnlockRequest(
            device_id=device.id,
            device_name=device.name,
            device_type=device.type,
            request_source_ip=request_source_ip,
            reason=reason,
            timestamp=self.clock(),
        )
        self._state.requests.append(req)
        self._persist()
        return req.model_copy(deep=True)

    def remove_request(self, request_id: str) -> Optional[UnlockRequest]:
        req = next((r for r in self._state.requests if r.id == request_id), None)
        if req is not None:
            self._state.requests = [r for r in self._state.requests if r.id != request_id]
            self._persist()
        return req

    def remove_requests_for_device(self, device_id: str) -> List[UnlockRequest]:
        removed = [r for r in self._state.requests if r.device_id == device_id]
        if removed:
            self._state.requests = [r for r in self._state.requests if r.device_id != device_id]
            self._persist()
        return removed

    # ---------------------------
    # Sesiones activas
    # ---------------------------

    def list_sessions(self) -> List[ActiveSession]:
        return _copy(self._state.sessions)

    def add_session(self, session: ActiveSession):
        self._state.sessions.append(session.model_copy(deep=True))
        self._persist()

    def clear_sessions_for_device(self, device_id: str) -> List[ActiveSession]:
        removed = [s for s in self._state.sessions if s.device_id == device_id]
        if removed:
            self._state.sessions = [s for s in self._state.sessions if s.device_id != device_id]
            self._persist()
        return removed

    def expire_sessions(self, now: datetime) -> List[ActiveSession]:
        expired = [s for s in self._state.sessions if s.expires_at <= now]
        if expired:
            self._state.sessions = [s for s in self._state.sessions if s.expires_at > now]
            self._persist()
        return expired

    # ---------------------------
    # Auditoría (máx. max_logs, se descarta la más antigua)
    # ---------------------------

    def add_log(self, category: LogCategory, level: LogLevel, message: str,
                details: Optional[str] = None) -> LogEntry:
        entry = LogEntry(timestamp=self.clock(), category=category, level=level,
                         message=message, details=details)
        self._state.logs.append(entry)
        if len(self._state.logs) > self.max_logs:
            del self._state.logs[: len(self._state.logs) - self.max_logs]
        self._persist()
        logger.log(_PY_LEVELS[level], "[%s] %s%s", category.value, message,
                   f" ({details})" if details else "")
        return entry.model_copy(deep=True)

    def get_logs(self, limit: int = 200) -> List[LogEntry]:
        # más reciente primero
        recent = self._state.logs[-limit:] if limit > 0 else []
        return _copy(reversed(recent))

    def log_count(self) -> int:
        return len(self._state.logs)

    # ---------------------------
    # Emparejamientos
    # ---------------------------

    def list_pairings(self) -> List[PairingSession]:
        return _copy(self._state.pairings)

    def get_pairing(self, device_id: str) -> Optional[PairingSession]:
        for p in self._state.pairings:
            if p.device_id == device_id:
                return p.model_copy(deep=True)
        return None

    def add_pairing(self, pairing: PairingSession):
        self._state.pairings.append(pairing.model_copy(deep=True))
        self._persist()

    def remove_pairings_for_device(self, device_id: str) -> List[PairingSession]:
        removed = [p for p in self._state.pairings if p.device_id == device_id]
        if removed:
            self._state.pairings = [p for p in self._state.pairings if p.device_id != device_id]
            self._persist()
        return removed

    def consume_pairing(self, device_id: str, pairing_code: str) -> Optional[PairingSession]:
        match = next((p for p in self._state.pairings
                      if p.device_id == device_id and p.pairing_code == pairing_code), None)
        if match is not None:
            self._state.pairings = [p for p in self._state.pairings if p is not match]
            self._persist()
        return match

    def expire_pairings(self, now: datetime) -> List[PairingSession]:
        expired = [p for p in self._state.pairings if p.expires_at <= now]
        if expired:
            self._state.pairings = [p for p in self._state.pairings if p.expires_at > now]
            self._persist()
        return expired

    # ---------------------------
    # Tokens de un solo uso
    # ---------------------------

    def list_tokens(self) -> List[UnlockToken]:
        return _copy(self._state.tokens)

    def add_token(self, token: UnlockToken):
        self._state.tokens.append(token.model_copy(deep=True))
        self._persist()

    def consume_token(self, device_id: str, value: str, now: datetime) -> Optional[UnlockToken]:
        """
        Quita todos los tokens que coinciden con (device_id, value); los caducados
        se eliminan como basura. Devuelve el token válido, si lo había.
        """
        matches = [t for t in self._state.tokens if t.device_id == device_id and t.token == value]
        if not matches:
            return None
        found = next((t for t in matches if t.expires_at > now), None)
        self._state.tokens = [t for t in self._state.tokens if not any(t is m for m in matches)]
        self._persist()
        return found

    def expire_tokens(self, now: datetime) -> List[UnlockToken]:
        expired = [t for t in self._state.tokens if t.expires_at <= now]
        if expired:
            self._state.tokens = [t for t in self._state.tokens if t.expires_at > now]
            self._persist()
        return expired
