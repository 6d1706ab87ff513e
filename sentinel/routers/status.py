from fastapi import APIRouter, Depends

from ..deps import get_services
from ..services import Services

router = APIRouter()


@router.get("/health")
async def health(svc: Services = Depends(get_services)):
    active = await svc.gateway.count_active(svc.clock())
    return svc.monitor.snapshot(active)


@router.get("/state")
def state(svc: Services = Depends(get_services)):
    return svc.store.snapshot()


@router.get("/logs")
def logs(svc: Services = Depends(get_services)):
    return {"logs": svc.store.get_logs()}
