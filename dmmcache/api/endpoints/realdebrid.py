from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from dmmcache.api.dependencies import get_real_debrid
from dmmcache.api.responses import require_credential, upstream_response
from dmmcache.core.exceptions import ValidationError
from dmmcache.debrid.realdebrid import RealDebrid

router = APIRouter(prefix="/api/realdebrid", tags=["Real-Debrid"])


class TokenRequest(BaseModel):
    clientId: str
    clientSecret: str
    code: str


@router.get("/time", summary="Real-Debrid server time")
async def server_time(real_debrid: RealDebrid = Depends(get_real_debrid)):
    return upstream_response({"time": await real_debrid.get_time_iso()})


@router.get("/user", summary="Current Real-Debrid user")
async def user(real_debrid: RealDebrid = Depends(get_real_debrid)):
    require_credential(real_debrid)
    result = await real_debrid.get_user()
    return upstream_response(result.data, result)


@router.get("/torrents", summary="Real-Debrid torrent list")
async def torrents(
    page: int = Query(1, ge=1),
    limit: int = Query(1, ge=1, le=5000),
    real_debrid: RealDebrid = Depends(get_real_debrid),
):
    require_credential(real_debrid)
    result = await real_debrid.get_user_torrents(page, limit)

    headers = {}
    if result.data.total_count is not None:
        headers["X-Total-Count"] = str(result.data.total_count)
    return upstream_response(result.data.data, result, headers)


@router.get("/device-code", summary="Start the device authorization flow")
async def device_code(real_debrid: RealDebrid = Depends(get_real_debrid)):
    return upstream_response(await real_debrid.get_device_code())


@router.get("/credentials", summary="Poll device credentials")
async def credentials(
    deviceCode: Optional[str] = None,
    real_debrid: RealDebrid = Depends(get_real_debrid),
):
    if not deviceCode:
        raise ValidationError('Missing "deviceCode" query parameter')
    return upstream_response(await real_debrid.get_credentials(deviceCode))


@router.post("/token", summary="Exchange a device code or refresh token")
async def token(
    request: TokenRequest, real_debrid: RealDebrid = Depends(get_real_debrid)
):
    return upstream_response(
        await real_debrid.get_token(
            request.clientId, request.clientSecret, request.code
        )
    )
