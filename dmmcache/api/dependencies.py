"""
Process-wide components and their FastAPI dependency getters.

Everything stateful (store, rate limiter, authenticator, gateway, upstream
network manager) is built once in the app lifespan, stored on ``app.state``
and injected with ``Depends()``. Tests swap any of them through
``app.dependency_overrides``.
"""
from dataclasses import dataclass
from typing import Optional

from databases import Database
from fastapi import Request

from dmmcache.core.database import build_database
from dmmcache.debrid.realdebrid import RealDebrid
from dmmcache.metadata.trakt import Trakt
from dmmcache.services.authenticator import ProblemAuthenticator
from dmmcache.services.availability_store import AvailabilityStore
from dmmcache.services.gateway import RetrievalGateway
from dmmcache.services.rate_limiter import RateLimiter
from dmmcache.utils.network import get_bearer_token, get_refresh_token
from dmmcache.utils.network_manager import (ApiCredential, NetworkManager,
                                            RetryPolicy)


@dataclass
class AppComponents:
    settings: object
    database: Database
    store: AvailabilityStore
    rate_limiter: RateLimiter
    authenticator: ProblemAuthenticator
    gateway: RetrievalGateway
    network_manager: NetworkManager


def build_components(settings, database: Optional[Database] = None) -> AppComponents:
    database = database or build_database(settings)
    store = AvailabilityStore(
        database,
        database_type=settings.DATABASE_TYPE,
        page_size=settings.STORE_PAGE_SIZE,
        configured=settings.is_database_configured,
    )
    rate_limiter = RateLimiter(
        window_seconds=settings.RATE_LIMIT_WINDOW,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        cleanup_interval=settings.RATE_LIMIT_CLEANUP_INTERVAL,
    )
    authenticator = ProblemAuthenticator(
        settings.DMM_PROBLEM_SALT, max_age=settings.DMM_PROBLEM_MAX_AGE
    )
    gateway = RetrievalGateway(
        store, authenticator, rate_limiter, max_hashes=settings.STORE_MAX_HASHES
    )
    network_manager = NetworkManager(
        timeout=settings.UPSTREAM_REQUEST_TIMEOUT,
        min_interval=settings.UPSTREAM_MIN_REQUEST_INTERVAL,
        policy=RetryPolicy(
            max_attempts=settings.RATELIMIT_MAX_RETRIES,
            base_delay=settings.RATELIMIT_RETRY_BASE_DELAY,
            max_delay=settings.RATELIMIT_RETRY_MAX_DELAY,
        ),
    )
    return AppComponents(
        settings=settings,
        database=database,
        store=store,
        rate_limiter=rate_limiter,
        authenticator=authenticator,
        gateway=gateway,
        network_manager=network_manager,
    )


def _request_credential(request: Request) -> Optional[ApiCredential]:
    access_token = get_bearer_token(request)
    if not access_token:
        return None
    return ApiCredential(access_token, get_refresh_token(request))


def get_components(request: Request) -> AppComponents:
    return request.app.state.components


def get_gateway(request: Request) -> RetrievalGateway:
    return get_components(request).gateway


def get_store(request: Request) -> AvailabilityStore:
    return get_components(request).store


def get_rate_limiter(request: Request) -> RateLimiter:
    return get_components(request).rate_limiter


def get_real_debrid(request: Request) -> RealDebrid:
    components = get_components(request)
    client = components.network_manager.get_client(
        "realdebrid", components.settings.REAL_DEBRID_URL
    )
    return RealDebrid(
        client,
        credential=_request_credential(request),
        client_id=request.headers.get("x-client-id"),
        client_secret=request.headers.get("x-client-secret"),
        oauth_client_id=components.settings.REAL_DEBRID_CLIENT_ID,
    )


def get_trakt(request: Request) -> Trakt:
    components = get_components(request)
    client = components.network_manager.get_client(
        "trakt", components.settings.TRAKT_URL
    )
    return Trakt(
        client,
        components.settings.TRAKT_CLIENT_ID,
        components.settings.TRAKT_CLIENT_SECRET,
        credential=_request_credential(request),
    )
