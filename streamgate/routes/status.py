import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from streamgate.services import GatewayServices, get_services
from streamgate.storage.base import ObjectStoreClient, StorageError

logger = logging.getLogger(__name__)

status_router = APIRouter()


async def probe_store(store: ObjectStoreClient) -> dict:
    """One-key listing against a backend; errors are reported by class name only."""
    try:
        object_count = await store.probe()
    except StorageError as e:
        logger.warning(f"Storage backend {store.name} unreachable: {e}")
        return {
            "backend": store.name,
            "bucket": store.bucket,
            "online": False,
            "error": type(e.__cause__ or e).__name__,
        }
    return {"backend": store.name, "bucket": store.bucket, "online": True, "objectCount": object_count}


@status_router.get("/storage", summary="Check object store connectivity")
async def storage_status(services: Annotated[GatewayServices, Depends(get_services)]):
    """Probe every configured storage backend; answers 503 when any of them is offline."""
    backends = await asyncio.gather(*(probe_store(store) for store in services.stores))
    online = bool(backends) and all(backend["online"] for backend in backends)
    return JSONResponse(
        {"online": online, "default": services.stores.default, "backends": list(backends)},
        status_code=200 if online else 503,
    )
