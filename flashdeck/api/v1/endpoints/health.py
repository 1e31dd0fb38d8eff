# flashdeck/api/v1/endpoints/health.py
from fastapi import APIRouter, Depends

from flashdeck.api.deps import get_storage
from flashdeck.storage.base import Storage

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
def liveness_probe():
    return {"status": "ok"}


@router.get("/storage")
def storage_health(storage: Storage = Depends(get_storage)):
    return {"status": "ok", "backend": storage.name, "users": storage.count_users()}
