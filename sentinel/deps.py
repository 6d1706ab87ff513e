import hmac

from fastapi import Request

from .services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def has_valid_api_key(request: Request) -> bool:
    # sin clave configurada la API queda abierta (no recomendado)
    api_key = request.app.state.api_key
    if not api_key:
        return True
    sent = request.headers.get("x-sentinel-key") or request.headers.get("x-api-key") or ""
    return hmac.compare_digest(sent.encode(), api_key.encode())
