import secrets
from datetime import datetime, timedelta
from typing import Callable
from urllib.parse import quote

from pydantic import BaseModel

from .. import totp
from ..config import PAIRING_TTL_MIN
from ..errors import Expired, InvalidInput, NotFound
from ..models import Device, DeviceType, LogCategory, LogLevel, PairingSession
from ..store import StateStore
from ..utils import is_valid_wg_key, normalize_allowed_ip, utcnow


class PairingTicket(BaseModel):
    pairing_code: str
    expires_at: datetime
    totp_secret: str
    otpauth_url: str
    pairing_string: str


def generate_code() -> str:
    # 6 dígitos, sin ceros a la izquierda
    return str(100000 + secrets.randbelow(900000))


class PairingManager:
    def __init__(self, store: StateStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def start_pairing(self, device_id: str, device_name: str, device_type: str, allowed_ip: str,
                      ttl_minutes: float = PAIRING_TTL_MIN) -> PairingTicket:
        if not device_id or not device_name or not device_type or not allowed_ip:
            raise InvalidInput("deviceId, deviceName, deviceType, and allowedIp are required")
        if ttl_minutes <= 0:
            raise InvalidInput("pairingTtlMinutes must be positive")
        network = normalize_allowed_ip(allowed_ip)
        if network is None:
            raise InvalidInput(f"invalid allowedIp: {allowed_ip}")

        pairing = PairingSession(
            device_id=device_id,
            device_name=device_name,
            device_type=DeviceType.parse(device_type),
            allowed_ip=network,
            pairing_code=generate_code(),
            expires_at=self.clock() + timedelta(minutes=ttl_minutes),
            totp_secret=totp.generate_secret(),
        )
        # un solo emparejamiento en curso por dispositivo
        self.store.remove_pairings_for_device(device_id)
        self.store.add_pairing(pairing)
        self.store.add_log(LogCategory.AUTH, LogLevel.INFO, f"Pairing started for {device_name}",
                           f"Code {pairing.pairing_code}")
        return PairingTicket(
            pairing_code=pairing.pairing_code,
            expires_at=pairing.expires_at,
            totp_secret=pairing.totp_secret,
            otpauth_url=totp.provision_uri(pairing.totp_secret, device_name),
            pairing_string=f"sentinel://pair?deviceId={quote(device_id, safe='')}&code={pairing.pairing_code}",
        )

    def enrollment_uri(self, device_id: str) -> str:
        pairing = self.store.get_pairing(device_id)
        if pairing is None:
            raise NotFound("No pending pairing for device")
        return totp.provision_uri(pairing.totp_secret, pairing.device_name)

    def complete_pairing(self, device_id: str, code: str, public_key: str) -> Device:
        if not device_id or not code or not public_key:
            raise InvalidInput("deviceId, pairingCode, and publicKey are required")
        if not is_valid_wg_key(public_key):
            raise InvalidInput("publicKey is not a valid WireGuard key")

        # consumir y borrar en el mismo paso: un segundo intento ya no lo encuentra
        pairing = self.store.consume_pairing(device_id, code)
        if pairing is None:
            raise NotFound("Pairing not found or already used")
        if pairing.expires_at <= self.clock():
            raise Expired("Pairing expired")

        device = self.store.upsert_device_from_pairing(pairing, public_key)
        self.store.add_log(LogCategory.AUTH, LogLevel.SUCCESS, f"Paired {pairing.device_name}",
                           f"IP {pairing.allowed_ip}")
        return device
