import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from dmmcache.api.dependencies import AppComponents, build_components
from dmmcache.api.endpoints import (availability, base, dbsize, realdebrid,
                                    torrents, trakt)
from dmmcache.core.database import setup_database, teardown_database
from dmmcache.core.exceptions import DmmCacheError, RateLimited
from dmmcache.core.logger import logger
from dmmcache.core.models import settings as default_settings


class LoguruMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(f"Exception during request processing: {e}")
            raise
        finally:
            process_time = time.time() - start_time
            logger.log(
                "API",
                f"{request.method} {request.url.path} - {response.status_code if 'response' in locals() else '500'} - {process_time:.2f}s",
            )
        return response


async def dmm_cache_error_handler(request: Request, exc: DmmCacheError):
    headers = {}
    if isinstance(exc, RateLimited):
        headers = {
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": str(exc.remaining),
        }
    elif exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    fields = ", ".join(
        ".".join(str(part) for part in error["loc"][1:]) or error["loc"][0]
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "errorMessage": f"Invalid fields: {fields}"},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "errorMessage": str(exc)},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    components: AppComponents = app.state.components

    if components.store.configured:
        try:
            await setup_database(components.database, components.settings)
        except Exception as e:
            logger.error(f"Availability store setup failed, serving degraded: {e}")
    else:
        logger.warning("Database not configured, serving empty results")

    components.rate_limiter.start()

    try:
        yield
    finally:
        await components.rate_limiter.stop()
        await components.network_manager.close_all()
        await teardown_database(components.database)


def create_app(
    settings=default_settings, components: Optional[AppComponents] = None
) -> FastAPI:
    app = FastAPI(
        title="DMM Cache",
        summary="Cached torrent availability for Debrid Media Manager.",
        lifespan=lifespan,
        redoc_url=None,
    )
    app.state.components = components or build_components(settings)

    app.add_middleware(LoguruMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "status",
            "X-Total-Count",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-Access-Token",
            "X-Refresh-Token",
            "X-Token-Expires-At",
        ],
    )

    app.add_exception_handler(DmmCacheError, dmm_cache_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(base.router)
    app.include_router(torrents.router)
    app.include_router(availability.router)
    app.include_router(dbsize.router)
    app.include_router(realdebrid.router)
    app.include_router(trakt.router)

    return app


app = create_app()
