"""Sentinel: acceso temporal a la VPN WireGuard bajo aprobación, token o TOTP."""

__version__ = "0.3.0"
