from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dmmcache.api.dependencies import get_store
from dmmcache.services.availability_store import AvailabilityStore
from dmmcache.utils.network import NO_CACHE_HEADERS

router = APIRouter(prefix="/api", tags=["Diagnostics"])


@router.get(
    "/dbsize",
    summary="Store Size",
    description="Number of cached media keys and of processing/requested markers.",
)
async def dbsize(store: AvailabilityStore = Depends(get_store)):
    content = {
        "contentSize": await store.size(),
        "processing": await store.processing_count(),
        "requested": await store.requested_count(),
    }
    if not store.configured:
        content["warning"] = "Database is not configured, counts are unavailable"
    return JSONResponse(content=content, headers=NO_CACHE_HEADERS)
