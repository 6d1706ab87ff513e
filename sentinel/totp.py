from datetime import datetime
from typing import Optional

import pyotp

from .config import TOTP_ISSUER


def generate_secret() -> str:
    return pyotp.random_base32()


def check(code: str, secret: str, at: Optional[datetime] = None) -> bool:
    """Valida el código contra el paso actual ±1 (±30s de deriva de reloj)."""
    code = (code or "").strip()
    if not code.isdigit():
        return False
    for_time = int(at.timestamp()) if at is not None else None
    return pyotp.TOTP(secret).verify(code, for_time=for_time, valid_window=1)


def provision_uri(secret: str, name: str, issuer: str = TOTP_ISSUER) -> str:
    return pyotp.totp.TOTP(secret).provisioning_uri(name=name, issuer_name=issuer)
