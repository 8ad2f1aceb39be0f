from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from dmmcache.api.dependencies import get_trakt
from dmmcache.api.responses import require_credential, upstream_response
from dmmcache.metadata.trakt import Trakt

router = APIRouter(prefix="/api/trakt", tags=["Trakt"])


class ExchangeRequest(BaseModel):
    code: str
    redirectUri: str


class RefreshRequest(BaseModel):
    refreshToken: str


@router.get("/user", summary="Trakt user settings")
async def user(trakt: Trakt = Depends(get_trakt)):
    require_credential(trakt)
    result = await trakt.get_user_settings()
    return upstream_response(result.data, result)


@router.get("/lists", summary="Personal lists of a Trakt user")
async def lists(userSlug: str = Query(...), trakt: Trakt = Depends(get_trakt)):
    require_credential(trakt)
    result = await trakt.get_personal_lists(userSlug)
    return upstream_response(result.data, result)


@router.get("/liked-lists", summary="Lists liked by a Trakt user")
async def liked_lists(userSlug: str = Query(...), trakt: Trakt = Depends(get_trakt)):
    require_credential(trakt)
    result = await trakt.get_liked_lists(userSlug)
    return upstream_response(result.data, result)


@router.get("/list-items", summary="Items of a Trakt list")
async def list_items(
    userSlug: str = Query(...),
    listId: int = Query(...),
    type: Optional[str] = None,
    trakt: Trakt = Depends(get_trakt),
):
    require_credential(trakt)
    result = await trakt.get_list_items(userSlug, listId, type)
    return upstream_response(result.data, result)


@router.get("/watchlist", summary="Trakt watchlist")
async def watchlist(type: str = "movies", trakt: Trakt = Depends(get_trakt)):
    require_credential(trakt)
    result = await trakt.get_watchlist(type)
    return upstream_response(result.data, result)


@router.post("/exchange", summary="Exchange an authorization code")
async def exchange(request: ExchangeRequest, trakt: Trakt = Depends(get_trakt)):
    return upstream_response(
        await trakt.exchange_code(request.code, request.redirectUri)
    )


@router.post("/refresh", summary="Refresh a Trakt access token")
async def refresh(request: RefreshRequest, trakt: Trakt = Depends(get_trakt)):
    return upstream_response(await trakt.refresh_token(request.refreshToken))
