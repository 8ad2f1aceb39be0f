import os

from databases import Database

from dmmcache.core.logger import logger


def build_database(settings) -> Database:
    return Database(settings.database_url)


async def setup_database(database: Database, settings):
    if settings.DATABASE_TYPE == "sqlite":
        directory = os.path.dirname(settings.DATABASE_PATH)
        if directory:
            os.makedirs(directory, exist_ok=True)

    await database.connect()

    await database.execute(
        """
            CREATE TABLE IF NOT EXISTS scraped_keys (
                tier TEXT NOT NULL,
                key TEXT NOT NULL,
                record_count INTEGER NOT NULL,
                updated_at REAL NOT NULL,
                PRIMARY KEY (tier, key)
            )
        """
    )

    await database.execute(
        """
            CREATE TABLE IF NOT EXISTS scraped_results (
                tier TEXT NOT NULL,
                key TEXT NOT NULL,
                info_hash TEXT NOT NULL,
                size BIGINT NOT NULL,
                file_count INTEGER NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (tier, key, info_hash)
            )
        """
    )

    await database.execute(
        "CREATE INDEX IF NOT EXISTS idx_scraped_results_info_hash ON scraped_results (info_hash)"
    )
    await database.execute(
        "CREATE INDEX IF NOT EXISTS idx_scraped_results_key_size ON scraped_results (tier, key, size)"
    )

    logger.log("STORE", f"Database ready ({settings.DATABASE_TYPE})")


async def teardown_database(database: Database):
    try:
        if database.is_connected:
            await database.disconnect()
    except Exception as e:
        logger.error(f"Error tearing down the database: {e}")
