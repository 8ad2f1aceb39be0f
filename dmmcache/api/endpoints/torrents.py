from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from dmmcache.api.dependencies import get_gateway
from dmmcache.services.gateway import MediaQuery, RetrievalGateway
from dmmcache.services.models import GatewayResult, GatewayStatus
from dmmcache.utils.network import NO_CACHE_HEADERS, get_client_ip

router = APIRouter(prefix="/api/torrents", tags=["Torrents"])


def _render(result: GatewayResult):
    if result.status is not GatewayStatus.HIT:
        return Response(
            status_code=204,
            headers={**NO_CACHE_HEADERS, "status": result.status.value},
        )

    content = {
        "results": [
            record.model_dump(mode="json", exclude_none=True)
            for record in result.results
        ]
    }
    if result.warning:
        content["warning"] = result.warning
    return JSONResponse(content=content, headers=NO_CACHE_HEADERS)


@router.get(
    "/movie",
    summary="Movie Results",
    description="Cached torrent results for a movie, or a processing/requested marker.",
)
async def movie(
    request: Request,
    imdbId: Optional[str] = None,
    dmmProblemKey: Optional[str] = None,
    solution: Optional[str] = None,
    onlyTrusted: Optional[str] = None,
    minSize: Optional[str] = None,
    page: Optional[str] = None,
    gateway: RetrievalGateway = Depends(get_gateway),
):
    query = MediaQuery(
        imdb_id=imdbId,
        problem_key=dmmProblemKey,
        solution=solution,
        only_trusted=onlyTrusted == "true",
        min_size=minSize,
        page=page,
    )
    return _render(await gateway.query(query, get_client_ip(request)))


@router.get(
    "/tv",
    summary="TV Season Results",
    description="Cached torrent results for one season of a show, or a processing/requested marker.",
)
async def tv(
    request: Request,
    imdbId: Optional[str] = None,
    seasonNum: Optional[str] = None,
    dmmProblemKey: Optional[str] = None,
    solution: Optional[str] = None,
    onlyTrusted: Optional[str] = None,
    minSize: Optional[str] = None,
    page: Optional[str] = None,
    gateway: RetrievalGateway = Depends(get_gateway),
):
    query = MediaQuery(
        imdb_id=imdbId,
        problem_key=dmmProblemKey,
        solution=solution,
        season=seasonNum or "",
        only_trusted=onlyTrusted == "true",
        min_size=minSize,
        page=page,
    )
    return _render(await gateway.query(query, get_client_ip(request)))
