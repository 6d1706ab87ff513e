# sentinel/config.py
import logging
import os
from pathlib import Path

# ====== Servidor ======
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8787"))
STATE_PATH = Path(os.getenv("STATE_PATH", "data/state.json"))

# ====== Acceso a la API ======
API_KEY = os.getenv("SENTINEL_API_KEY", "")
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("SENTINEL_ALLOWED_ORIGINS", "").split(",") if o.strip()]
RATE_MAX = int(os.getenv("SENTINEL_RATE_MAX", "60"))
RATE_WINDOW_SECONDS = int(os.getenv("SENTINEL_RATE_WINDOW_SECONDS", "60"))
RATE_ALLOWLIST = [a.strip() for a in os.getenv("SENTINEL_RATE_ALLOWLIST", "").split(",") if a.strip()]

# ====== WireGuard ======
WG_INTERFACE = os.getenv("WG_INTERFACE", "wg0")
WG_MODE = os.getenv("WG_MODE", "host").lower()  # "host" | "container"
WG_CONTAINER = os.getenv("WG_CONTAINER_NAME", "wireguard")
WG_KEEPALIVE = int(os.getenv("WG_KEEPALIVE", "25"))
ACTIVE_WINDOW_SECONDS = 180

# ====== Tareas de fondo ======
HEALTH_TARGET = os.getenv("HEALTH_TARGET", "1.1.1.1")
HEALTH_INTERVAL_SECONDS = float(os.getenv("HEALTH_INTERVAL_SECONDS", "5"))
REAPER_INTERVAL_SECONDS = float(os.getenv("REAPER_INTERVAL_SECONDS", "15"))

# ====== TOTP / defaults de operación ======
TOTP_ISSUER = os.getenv("TOTP_ISSUER", "Sentinel")
PAIRING_TTL_MIN = 10
TOKEN_TTL_SEC = 60
SESSION_MIN = 60
MAX_LOG_ENTRIES = 500

# ====== Logging ======
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def setup_logging(level: str = LOG_LEVEL):
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
