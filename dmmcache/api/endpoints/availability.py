from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from dmmcache.api.dependencies import get_gateway
from dmmcache.core.exceptions import StoreUnavailable, ValidationError
from dmmcache.core.logger import logger
from dmmcache.services.gateway import RetrievalGateway
from dmmcache.utils.network import NO_CACHE_HEADERS, get_client_ip

router = APIRouter(prefix="/api/availability", tags=["Availability"])


async def _read_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@router.post(
    "/check",
    summary="Hash Availability",
    description="Looks up which of up to 100 info hashes are known to the store.",
)
async def check(request: Request, gateway: RetrievalGateway = Depends(get_gateway)):
    decision = gateway.rate_check(get_client_ip(request))
    headers = {
        **NO_CACHE_HEADERS,
        "X-RateLimit-Limit": str(gateway.rate_limiter.max_requests),
        "X-RateLimit-Remaining": str(decision.remaining),
    }

    body = await _read_body(request)
    gateway.authenticate(body.get("dmmProblemKey"), body.get("solution"))

    try:
        matches = await gateway.check_hashes(body.get("hashes"))
    except StoreUnavailable as e:
        logger.warning(f"Availability check degraded: {e.message}")
        return JSONResponse(
            content={"available": [], "warning": e.display_message}, headers=headers
        )

    return JSONResponse(
        content={"available": [match.model_dump(mode="json") for match in matches]},
        headers=headers,
    )
