from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..deps import client_ip, get_services
from ..schemas import ApproveReq, TokenCreateReq, TokenRedeemReq, TotpReq, UnlockRequestReq
from ..services import Services

router = APIRouter()


@router.get("/pending")
def pending_requests(svc: Services = Depends(get_services)):
    return {"requests": svc.store.list_requests()}


@router.post("/request")
def request_unlock(req: UnlockRequestReq, request: Request, svc: Services = Depends(get_services)):
    source = req.request_source_ip or client_ip(request)
    return {"request": svc.access.request_unlock(req.device_id, source, req.reason)}


# --- token de un solo uso ---
@router.post("/token/create")
def create_token(req: TokenCreateReq, svc: Services = Depends(get_services)):
    token = svc.tokens.create_token(req.device_id, req.ttl_seconds)
    return {"token": token.token, "expires_at": token.expires_at}


@router.post("/token/redeem")
async def redeem_token(req: TokenRedeemReq, svc: Services = Depends(get_services)):
    expires_at = await svc.access.unlock_with_token(req.device_id, req.token, req.duration_minutes)
    return {"status": "unlocked", "expires_at": expires_at}


@router.post("/totp")
async def totp_unlock(req: TotpReq, svc: Services = Depends(get_services)):
    expires_at = await svc.access.unlock_with_totp(req.device_id, req.code, req.duration_minutes)
    return {"status": "unlocked", "expires_at": expires_at}


# --- aprobación manual ---
@router.post("/{request_id}/approve")
async def approve(request_id: str, body: Optional[ApproveReq] = None, svc: Services = Depends(get_services)):
    body = body or ApproveReq()
    device_id, expires_at = await svc.access.approve(request_id, body.duration_minutes)
    return {"expires_at": expires_at, "device_id": device_id}


@router.post("/{request_id}/deny")
def deny(request_id: str, svc: Services = Depends(get_services)):
    svc.access.deny(request_id)
    return {"status": "denied"}
