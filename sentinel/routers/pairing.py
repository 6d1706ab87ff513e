import io

import qrcode
from fastapi import APIRouter, Depends, Response

from ..deps import get_services
from ..schemas import PairCompleteReq, PairStartReq
from ..services import Services

router = APIRouter()


@router.post("/start")
def pair_start(req: PairStartReq, svc: Services = Depends(get_services)):
    """Lo inicia el panel: devuelve el código de 6 dígitos y el secreto TOTP."""
    return svc.pairing.start_pairing(
        req.device_id, req.device_name, req.device_type, req.allowed_ip, req.pairing_ttl_minutes
    )


@router.post("/complete")
def pair_complete(req: PairCompleteReq, svc: Services = Depends(get_services)):
    """Lo llama el dispositivo con el código y su clave pública WireGuard."""
    device = svc.pairing.complete_pairing(req.device_id, req.pairing_code, req.public_key)
    return {"status": "paired", "device_id": device.id, "totp_secret": device.totp_secret}


@router.get("/pending")
def pair_pending(svc: Services = Depends(get_services)):
    return {"pairings": svc.store.list_pairings()}


@router.get("/{device_id}/qr")
def pair_qr(device_id: str, svc: Services = Depends(get_services)):
    # QR PNG del otpauth:// para dar de alta el TOTP en la app del móvil
    uri = svc.pairing.enrollment_uri(device_id)
    img = qrcode.make(uri)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")
