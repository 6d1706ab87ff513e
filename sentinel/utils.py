import base64
import binascii
import ipaddress
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_allowed_ip(value: str) -> str | None:
    # ACEPTA "10.10.0.2" O "10.10.0.2/32"; DEVUELVE None SI NO ES UNA RED VÁLIDA
    try:
        return str(ipaddress.ip_network(value.strip(), strict=False))
    except ValueError:
        return None


def is_valid_wg_key(key: str) -> bool:
    # CLAVE WIREGUARD = 32 BYTES EN BASE64 (44 CARACTERES)
    try:
        raw = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError):
        return False
    return len(raw) == 32
