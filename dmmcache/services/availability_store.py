import asyncio
import time
from contextlib import asynccontextmanager
from typing import Iterable, List

import orjson
from databases import Database

from dmmcache.core.exceptions import StoreUnavailable
from dmmcache.core.logger import logger
from dmmcache.services.models import AvailabilityMatch, ScrapedRecord
from dmmcache.services.normalizer import flatten_and_remove_duplicates
from dmmcache.utils.media_ids import (MOVIE_PREFIX, PROCESSING_PREFIX,
                                      REQUESTED_PREFIX, TV_PREFIX)

TRUSTED_TIER = "trusted"
GENERAL_TIER = "general"

BYTES_PER_GB = 1024**3

CONNECTION_ERROR_HINTS = ("connect", "database", "password")


def is_connection_error(error: Exception) -> bool:
    if isinstance(error, (OSError, ConnectionError, asyncio.TimeoutError)):
        return True
    message = str(error).lower()
    return any(hint in message for hint in CONNECTION_ERROR_HINTS)


class AvailabilityStore:
    """
    Scraped results keyed by media key, split in a trusted and a general tier.

    Every key that has been saved has a row in ``scraped_keys`` even when its
    record list is empty, which is how ``processing:`` and ``requested:``
    markers exist. Records live one per hash in ``scraped_results``.
    """

    def __init__(
        self,
        database: Database,
        database_type: str = "sqlite",
        page_size: int = 50,
        configured: bool = True,
    ):
        self.database = database
        self.database_type = database_type
        self.page_size = page_size
        self.configured = configured

    async def _ensure_connected(self):
        if not self.configured:
            raise StoreUnavailable(
                "Availability store is not configured",
                "Database not configured. Please set a valid DATABASE_URL in your environment variables.",
            )

        if self.database.is_connected:
            return

        try:
            await self.database.connect()
        except Exception as e:
            logger.log("STORE", f"❌ Could not connect to the availability store: {e}")
            raise StoreUnavailable(
                f"Could not connect to the availability store: {e}",
                "Database connection failed. Please check your DATABASE_URL configuration.",
            ) from e

    @asynccontextmanager
    async def _guard(self, operation: str):
        await self._ensure_connected()
        try:
            yield
        except StoreUnavailable:
            raise
        except Exception as e:
            if not is_connection_error(e):
                raise
            logger.log("STORE", f"❌ Store unavailable during {operation}: {e}")
            raise StoreUnavailable(
                f"Availability store failed during {operation}: {e}",
                "Database connection failed. Please check your DATABASE_URL configuration.",
            ) from e

    async def _get_results(
        self, tier: str, key: str, min_size_gb: int, page: int
    ) -> List[ScrapedRecord]:
        min_size = max(min_size_gb or 0, 0) * BYTES_PER_GB
        page = max(page or 0, 0)

        async with self._guard(f"fetch {tier} {key}"):
            rows = await self.database.fetch_all(
                """
                    SELECT data
                    FROM scraped_results
                    WHERE tier = :tier
                    AND key = :key
                    AND size >= :min_size
                    ORDER BY size DESC, info_hash
                    LIMIT :limit OFFSET :offset
                """,
                {
                    "tier": tier,
                    "key": key,
                    "min_size": min_size,
                    "limit": self.page_size,
                    "offset": page * self.page_size,
                },
            )

        return [ScrapedRecord.model_validate(orjson.loads(row["data"])) for row in rows]

    async def get_completed(
        self, key: str, min_size_gb: int = 0, page: int = 0
    ) -> List[ScrapedRecord]:
        return await self._get_results(TRUSTED_TIER, key, min_size_gb, page)

    async def get_general(
        self, key: str, min_size_gb: int = 0, page: int = 0
    ) -> List[ScrapedRecord]:
        return await self._get_results(GENERAL_TIER, key, min_size_gb, page)

    async def _key_exists(self, key: str, tier: str = None) -> bool:
        query = "SELECT 1 FROM scraped_keys WHERE key = :key"
        params = {"key": key}
        if tier is not None:
            query += " AND tier = :tier"
            params["tier"] = tier

        async with self._guard(f"exists {key}"):
            row = await self.database.fetch_one(query + " LIMIT 1", params)
        return row is not None

    async def exists(self, key: str) -> bool:
        return await self._key_exists(key)

    async def exists_completed(self, key: str) -> bool:
        return await self._key_exists(key, TRUSTED_TIER)

    async def exists_general(self, key: str) -> bool:
        return await self._key_exists(key, GENERAL_TIER)

    async def save(
        self, key: str, records: Iterable[ScrapedRecord], trusted: bool = False
    ):
        tier = TRUSTED_TIER if trusted else GENERAL_TIER
        unique = flatten_and_remove_duplicates(records)

        values = []
        for record in unique:
            record = record.model_copy(update={"trusted": trusted})
            values.append(
                {
                    "tier": tier,
                    "key": key,
                    "info_hash": record.info_hash,
                    "size": record.size,
                    "file_count": len(record.files),
                    "data": orjson.dumps(record.model_dump()).decode("utf-8"),
                }
            )

        async with self._guard(f"save {key}"):
            async with self.database.transaction():
                await self.database.execute(
                    "DELETE FROM scraped_results WHERE tier = :tier AND key = :key",
                    {"tier": tier, "key": key},
                )
                await self.database.execute(
                    """
                        INSERT INTO scraped_keys (tier, key, record_count, updated_at)
                        VALUES (:tier, :key, :record_count, :updated_at)
                        ON CONFLICT (tier, key) DO UPDATE SET
                        record_count = excluded.record_count,
                        updated_at = excluded.updated_at
                    """,
                    {
                        "tier": tier,
                        "key": key,
                        "record_count": len(values),
                        "updated_at": time.time(),
                    },
                )
                if values:
                    await self.database.execute_many(
                        """
                            INSERT INTO scraped_results (tier, key, info_hash, size, file_count, data)
                            VALUES (:tier, :key, :info_hash, :size, :file_count, :data)
                        """,
                        values,
                    )

        logger.log("STORE", f"💾 Saved {len(values)} {tier} records for {key}")

    async def check_availability_by_hashes(
        self, hashes: List[str]
    ) -> List[AvailabilityMatch]:
        info_hashes = list(dict.fromkeys(h.lower() for h in hashes))
        if not info_hashes:
            return []

        if self.database_type == "postgresql":
            hash_source = "json_array_elements_text(CAST(:info_hashes AS json))"
        else:
            hash_source = "json_each(:info_hashes)"

        async with self._guard("hash availability"):
            rows = await self.database.fetch_all(
                f"""
                    SELECT info_hash, file_count, size, data
                    FROM scraped_results
                    WHERE info_hash IN (SELECT CAST(value AS TEXT) FROM {hash_source})
                """,
                {"info_hashes": orjson.dumps(info_hashes).decode("utf-8")},
            )

        best = {}
        for row in rows:
            current = best.get(row["info_hash"])
            if current is None or (row["file_count"], row["size"]) > (
                current["file_count"],
                current["size"],
            ):
                best[row["info_hash"]] = row

        matches = []
        for info_hash in info_hashes:
            row = best.get(info_hash)
            if row is None:
                continue
            record = ScrapedRecord.model_validate(orjson.loads(row["data"]))
            matches.append(
                AvailabilityMatch(hash=record.hash, files=record.files, size=record.size)
            )

        return matches

    async def _count(self, query: str, values: dict, label: str) -> int:
        try:
            await self._ensure_connected()
            return int(await self.database.fetch_val(query, values) or 0)
        except Exception as e:
            logger.log("STORE", f"⚠️ Could not compute {label}: {e}")
            return 0

    async def size(self) -> int:
        return await self._count(
            """
                SELECT COUNT(DISTINCT key)
                FROM scraped_keys
                WHERE key LIKE :movie_pattern OR key LIKE :tv_pattern
            """,
            {"movie_pattern": f"{MOVIE_PREFIX}:%", "tv_pattern": f"{TV_PREFIX}:%"},
            "content size",
        )

    async def processing_count(self) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM scraped_keys WHERE key LIKE :pattern",
            {"pattern": f"{PROCESSING_PREFIX}:%"},
            "processing count",
        )

    async def requested_count(self) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM scraped_keys WHERE key LIKE :pattern",
            {"pattern": f"{REQUESTED_PREFIX}:%"},
            "requested count",
        )
