# schemas.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import PAIRING_TTL_MIN, SESSION_MIN, TOKEN_TTL_SEC


class Body(BaseModel):
    # acepta deviceId y device_id
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- emparejamiento ---
class PairStartReq(Body):
    device_id: str = Field(..., min_length=1)
    device_name: str = Field(..., min_length=1)
    device_type: str = Field(..., min_length=1)
    allowed_ip: str = Field(..., min_length=1)
    pairing_ttl_minutes: float = Field(PAIRING_TTL_MIN, gt=0)


class PairCompleteReq(Body):
    device_id: str = Field(..., min_length=1)
    pairing_code: str = Field(..., min_length=1)
    public_key: str = Field(..., min_length=1)


# --- desbloqueo ---
class UnlockRequestReq(Body):
    device_id: str = Field(..., min_length=1)
    reason: str = "Manual unlock"
    request_source_ip: Optional[str] = None


class ApproveReq(Body):
    duration_minutes: float = Field(SESSION_MIN, gt=0)


class TokenCreateReq(Body):
    device_id: str = Field(..., min_length=1)
    ttl_seconds: int = Field(TOKEN_TTL_SEC, gt=0)


class TokenRedeemReq(Body):
    device_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    duration_minutes: float = Field(SESSION_MIN, gt=0)


class TotpReq(Body):
    device_id: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    duration_minutes: float = Field(SESSION_MIN, gt=0)


# --- dispositivos ---
class StatusUpdateReq(Body):
    # se valida en RevocationHandler.set_status (400 si no es OFFLINE/LOCKED)
    status: str = ""
