# sentinel/errors.py
from typing import Optional


class SentinelError(Exception):
    """Error de dominio con su código HTTP asociado."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInput(SentinelError):
    status_code = 400


class NotFound(SentinelError):
    status_code = 404


class Expired(SentinelError):
    status_code = 410


class InvalidToken(SentinelError):
    status_code = 400


class Unauthorized(SentinelError):
    status_code = 401


class RateLimited(SentinelError):
    status_code = 429


class GatewayError(SentinelError):
    """Fallo de `wg` (o del contenedor WireGuard) al tocar la tabla de peers."""

    status_code = 500
