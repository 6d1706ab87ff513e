from datetime import timedelta

import pyotp
from conftest import T0

from sentinel import totp


def _code_at(secret, when):
    return pyotp.TOTP(secret).at(int(when.timestamp()))


def test_accepts_current_and_previous_step():
    secret = totp.generate_secret()

    assert totp.check(_code_at(secret, T0), secret, at=T0)
    assert totp.check(_code_at(secret, T0 - timedelta(seconds=30)), secret, at=T0)


def test_rejects_code_two_steps_old():
    secret = totp.generate_secret()
    old = _code_at(secret, T0 - timedelta(seconds=60))
    # descartar colisión con los pasos aceptados
    accepted = {_code_at(secret, T0 + timedelta(seconds=s)) for s in (-30, 0, 30)}
    if old in accepted:
        return

    assert not totp.check(old, secret, at=T0)


def test_rejects_non_numeric_code():
    secret = totp.generate_secret()
    assert not totp.check("abcdef", secret, at=T0)
    assert not totp.check("", secret, at=T0)


def test_provision_uri_carries_issuer_and_name():
    uri = totp.provision_uri("JBSWY3DPEHPK3PXP", "Pixel_8", issuer="Sentinel")
    assert uri.startswith("otpauth://totp/Sentinel:Pixel_8?")
    assert "secret=JBSWY3DPEHPK3PXP" in uri
    assert "issuer=Sentinel" in uri
