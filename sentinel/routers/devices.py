from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import get_services
from ..schemas import StatusUpdateReq
from ..services import Services

router = APIRouter()


@router.get("")
def list_devices(svc: Services = Depends(get_services)):
    return {"devices": svc.store.list_devices()}


@router.post("/{device_id}/status")
def update_status(device_id: str, body: Optional[StatusUpdateReq] = None, svc: Services = Depends(get_services)):
    status = svc.revocation.set_status(device_id, body.status if body else "")
    return {"status": status}


@router.post("/{device_id}/revoke")
async def revoke_device(device_id: str, svc: Services = Depends(get_services)):
    result = await svc.revocation.revoke(device_id)
    return {"status": "revoked", **result.model_dump()}
