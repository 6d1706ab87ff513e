from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class DeviceStatus(str, Enum):
    OFFLINE = "OFFLINE"
    LOCKED = "LOCKED"
    CONNECTED = "CONNECTED"


class DeviceType(str, Enum):
    WINDOWS = "WINDOWS"
    ANDROID = "ANDROID"
    LINUX = "LINUX"
    MACOS = "MACOS"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str) -> "DeviceType":
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN


class LogCategory(str, Enum):
    AUTH = "AUTH"
    VPN = "VPN"
    SYSTEM = "SYSTEM"


class LogLevel(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


def _new_id() -> str:
    return str(uuid4())


class Device(BaseModel):
    id: str
    name: str
    type: DeviceType = DeviceType.UNKNOWN
    public_key: str
    allowed_ip: str
    status: DeviceStatus = DeviceStatus.OFFLINE
    last_seen: Optional[datetime] = None
    totp_secret: Optional[str] = None
    paired_at: Optional[datetime] = None


class UnlockRequest(BaseModel):
    id: str = Field(default_factory=_new_id)
    device_id: str
    device_name: str
    device_type: DeviceType
    request_source_ip: str
    reason: str
    timestamp: datetime


class ActiveSession(BaseModel):
    device_id: str
    # id de la solicitud/token de origen, o "manual" / "totp"
    request_id: str = "manual"
    expires_at: datetime
    approved_at: datetime


class PairingSession(BaseModel):
    device_id: str
    device_name: str
    device_type: DeviceType
    allowed_ip: str
    pairing_code: str
    expires_at: datetime
    totp_secret: str


class UnlockToken(BaseModel):
    id: str = Field(default_factory=_new_id)
    device_id: str
    token: str
    created_at: datetime
    expires_at: datetime


class LogEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime
    category: LogCategory
    level: LogLevel
    message: str
    details: Optional[str] = None


class StateSnapshot(BaseModel):
    devices: List[Device] = Field(default_factory=list)
    requests: List[UnlockRequest] = Field(default_factory=list)
    sessions: List[ActiveSession] = Field(default_factory=list)
    logs: List[LogEntry] = Field(default_factory=list)
    pairings: List[PairingSession] = Field(default_factory=list)
    tokens: List[UnlockToken] = Field(default_factory=list)


def default_state() -> StateSnapshot:
    # DISPOSITIVOS PRE-REGISTRADOS; LA CLAVE SE RELLENA AL EMPAREJAR
    return StateSnapshot(devices=[
        Device(
            id="dev-main-win11",
            name="Main_Laptop_Win11",
            type=DeviceType.WINDOWS,
            public_key="<FILL_ME>",
            allowed_ip="10.10.0.2/32",
            status=DeviceStatus.LOCKED,
        ),
        Device(
            id="dev-pixel8",
            name="Pixel_8",
            type=DeviceType.ANDROID,
            public_key="<FILL_ME>",
            allowed_ip="10.10.0.3/32",
            status=DeviceStatus.OFFLINE,
        ),
    ])
