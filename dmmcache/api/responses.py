from typing import Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dmmcache.core.exceptions import MissingCredential
from dmmcache.utils.network import NO_CACHE_HEADERS
from dmmcache.utils.network_manager import UpstreamResult


def require_credential(client):
    if client.credential is None:
        raise MissingCredential()


def _jsonable(data):
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_jsonable(item) for item in data]
    return data


def upstream_response(
    data, result: Optional[UpstreamResult] = None, headers: Optional[dict] = None
) -> JSONResponse:
    """Render an upstream payload, echoing a refreshed credential in headers."""
    response_headers = {**NO_CACHE_HEADERS, **(headers or {})}

    credential = result.updated_credential if result is not None else None
    if credential is not None:
        response_headers["X-Access-Token"] = credential.access_token
        if credential.refresh_token:
            response_headers["X-Refresh-Token"] = credential.refresh_token
        if credential.expires_at:
            response_headers["X-Token-Expires-At"] = str(int(credential.expires_at))

    return JSONResponse(content=_jsonable(data), headers=response_headers)
