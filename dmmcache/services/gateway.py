import asyncio
from dataclasses import dataclass
from typing import List, Optional

from dmmcache.core.exceptions import (AuthError, RateLimited, StoreUnavailable,
                                      ValidationError)
from dmmcache.core.logger import logger
from dmmcache.services.authenticator import ProblemAuthenticator
from dmmcache.services.availability_store import AvailabilityStore
from dmmcache.services.models import (AvailabilityMatch, GatewayResult,
                                      GatewayStatus, ScrapedRecord, is_valid_hash)
from dmmcache.services.normalizer import normalize
from dmmcache.services.rate_limiter import RateLimitDecision, RateLimiter
from dmmcache.utils.media_ids import (MAX_MIN_SIZE_GB, MAX_PAGE, MediaKey,
                                      parse_optional_int)


@dataclass
class MediaQuery:
    """Raw query parameters, validated only once the caller is authenticated."""

    imdb_id: Optional[str]
    problem_key: Optional[str]
    solution: Optional[str]
    season: Optional[str] = None
    only_trusted: bool = False
    min_size: Optional[str] = None
    page: Optional[str] = None

    @property
    def is_tv(self) -> bool:
        return self.season is not None

    def media_key(self) -> MediaKey:
        if self.is_tv:
            return MediaKey.tv(self.imdb_id, self.season)
        return MediaKey.movie(self.imdb_id)


class RetrievalGateway:
    """
    Answers a media query in one round trip.

    Authenticate, rate-check, check both tiers, fetch what exists, then either
    return the merged results or report a miss. A miss either finds an
    in-flight ``processing:`` marker or writes a ``requested:`` backlog marker.
    The gateway never moves a key between states itself.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        authenticator: ProblemAuthenticator,
        rate_limiter: RateLimiter,
        max_hashes: int = 100,
    ):
        self.store = store
        self.authenticator = authenticator
        self.rate_limiter = rate_limiter
        self.max_hashes = max_hashes

    def authenticate(self, problem_key, solution):
        if not problem_key or not solution:
            raise AuthError("Authentication not provided")
        if not self.authenticator.validate(problem_key, solution):
            raise AuthError()

    def rate_check(self, identity: str) -> RateLimitDecision:
        decision = self.rate_limiter.check(identity)
        if not decision.allowed:
            logger.log("RATELIMIT", f"🚦 Rate limit hit for {identity}")
            raise RateLimited(
                decision.retry_after, self.rate_limiter.max_requests, decision.remaining
            )
        return decision

    async def _fetch_tiers(
        self, key: MediaKey, only_trusted: bool, min_size_gb: int, page: int
    ) -> Optional[List[ScrapedRecord]]:
        """Records of every tier holding ``key``, or None when no tier holds it."""
        key = str(key)

        if only_trusted:
            trusted_exists = await self.store.exists_completed(key)
            general_exists = False
        else:
            trusted_exists, general_exists = await asyncio.gather(
                self.store.exists_completed(key), self.store.exists_general(key)
            )

        if not trusted_exists and not general_exists:
            return None

        fetches = []
        if trusted_exists:
            fetches.append(self.store.get_completed(key, min_size_gb, page))
        if general_exists:
            fetches.append(self.store.get_general(key, min_size_gb, page))

        records = []
        for tier_records in await asyncio.gather(*fetches):
            records.extend(tier_records)
        return records

    async def _handle_miss(self, key: MediaKey) -> GatewayResult:
        if await self.store.exists(key.processing_key):
            logger.log("GATEWAY", f"⏳ {key} is being scraped")
            return GatewayResult(GatewayStatus.PROCESSING)

        try:
            await self.store.save(key.requested_key, [])
        except StoreUnavailable as e:
            logger.warning(f"Could not mark {key} as requested: {e.message}")
        else:
            logger.log("GATEWAY", f"📥 {key} marked as requested")

        return GatewayResult(GatewayStatus.REQUESTED)

    async def query(self, query: MediaQuery, identity: str) -> GatewayResult:
        self.authenticate(query.problem_key, query.solution)
        self.rate_check(identity)

        key = query.media_key()
        min_size_gb = parse_optional_int(query.min_size, "minSize", MAX_MIN_SIZE_GB)
        page = parse_optional_int(query.page, "page", MAX_PAGE)

        try:
            records = await self._fetch_tiers(
                key, query.only_trusted, min_size_gb, page
            )
            if records is None:
                return await self._handle_miss(key)

            results = normalize(records)
            logger.log(
                "GATEWAY", f"✅ {len(results)} results for {key} (page {page})"
            )
            return GatewayResult(GatewayStatus.HIT, results)
        except StoreUnavailable as e:
            logger.warning(f"Serving empty results for {key}: {e.message}")
            return GatewayResult(GatewayStatus.HIT, [], warning=e.display_message)

    def validate_hashes(self, hashes) -> List[str]:
        if not isinstance(hashes, list):
            raise ValidationError("Hashes must be an array")
        if len(hashes) > self.max_hashes:
            raise ValidationError(f"Maximum {self.max_hashes} hashes allowed")

        for info_hash in hashes:
            if not is_valid_hash(info_hash):
                raise ValidationError("Invalid hash format", hash=info_hash)
        return hashes

    async def check_hashes(self, hashes) -> List[AvailabilityMatch]:
        hashes = self.validate_hashes(hashes)
        if not hashes:
            return []
        return await self.store.check_availability_by_hashes(hashes)
