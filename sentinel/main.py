# sentinel/main.py
import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import ALLOWED_ORIGINS, API_KEY, RATE_ALLOWLIST, RATE_MAX, RATE_WINDOW_SECONDS, STATE_PATH
from .deps import client_ip, has_valid_api_key
from .errors import GatewayError, RateLimited, SentinelError, Unauthorized
from .ratelimit import InMemoryRateLimiter
from .routers import devices, pairing, status, unlock
from .services import HealthMonitor, Services
from .store import StateStore
from .utils import utcnow
from .wg import PeerGateway, WireGuardGateway

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[StateStore] = None,
    gateway: Optional[PeerGateway] = None,
    monitor: Optional[HealthMonitor] = None,
    clock: Callable[[], datetime] = utcnow,
    api_key: str = API_KEY,
    background: bool = True,
    rate_limiter: Optional[InMemoryRateLimiter] = None,
) -> FastAPI:
    """
    Construye la API. Store, gateway y monitor se pueden inyectar (tests);
    si no, se crean al arrancar a partir de la configuración del entorno.
    """
    app = FastAPI(
        title="Sentinel API",
        description="Acceso temporal a la VPN: emparejamiento, aprobación, tokens y TOTP.",
        version=__version__,
    )
    app.state.api_key = api_key
    app.state.services = None
    limiter = rate_limiter or InMemoryRateLimiter(RATE_MAX, RATE_WINDOW_SECONDS, RATE_ALLOWLIST)

    # ====== Rate limit + clave de API (antes de resolver la ruta) ======
    @app.middleware("http")
    async def guard(request: Request, call_next):
        if not limiter.allow(client_ip(request)):
            return JSONResponse(status_code=RateLimited.status_code, content={"error": "Too many requests"})
        if not has_valid_api_key(request):
            return JSONResponse(status_code=Unauthorized.status_code, content={"error": "Unauthorized"})
        return await call_next(request)

    # ====== CORS (el último añadido envuelve a los anteriores) ======
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ====== Errores ======
    @app.exception_handler(SentinelError)
    async def sentinel_error_handler(request: Request, exc: SentinelError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": "; ".join(problems)})

    # ====== Arranque / parada ======
    @app.on_event("startup")
    async def _startup():
        svc_store = store or StateStore(STATE_PATH, clock)
        svc_gateway = gateway or WireGuardGateway()
        svc_monitor = monitor or HealthMonitor()
        services = Services(svc_store, svc_gateway, svc_monitor, clock)
        app.state.services = services
        if not background:
            return
        if isinstance(svc_gateway, WireGuardGateway):
            try:
                version = await svc_gateway.ensure_available()
                logger.info("WireGuard detected: %s", version)
            except GatewayError:
                logger.warning("WireGuard binary not detected. API will run but peer actions will fail until wg is installed.")
        services.reaper.start()
        services.monitor.start()

    @app.on_event("shutdown")
    async def _shutdown():
        services: Optional[Services] = app.state.services
        if services is None:
            return
        await services.reaper.stop()
        await services.monitor.stop()

    # ====== Rutas ======
    app.include_router(devices.router, prefix="/api/devices", tags=["Devices"])
    app.include_router(pairing.router, prefix="/api/pair", tags=["Pairing"])
    app.include_router(unlock.router, prefix="/api/unlock", tags=["Unlock"])
    app.include_router(status.router, prefix="/api", tags=["Status"])
    return app


app = create_app()
