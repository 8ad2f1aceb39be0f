import sys

from loguru import logger

from dmmcache.core.log_levels import CUSTOM_LOG_LEVELS, STANDARD_LOG_LEVELS


def setupLogger(level: str):
    # Configure custom log levels
    for level_name, level_config in CUSTOM_LOG_LEVELS.items():
        try:
            logger.level(
                level_name,
                no=level_config["no"],
                icon=level_config["icon"],
                color=level_config["loguru_color"],
            )
        except (TypeError, ValueError):
            # already registered by a previous call
            pass

    # Configure standard log levels (override defaults)
    for level_name, level_config in STANDARD_LOG_LEVELS.items():
        logger.level(
            level_name, icon=level_config["icon"], color=level_config["loguru_color"]
        )

    log_format = (
        "<white>{time:YYYY-MM-DD}</white> <magenta>{time:HH:mm:ss}</magenta> | "
        "<level>{level.icon}</level> <level>{level}</level> | "
        "<cyan>{module}</cyan>.<cyan>{function}</cyan> - <level>{message}</level>"
    )

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": level,
                "format": log_format,
                "backtrace": False,
                "diagnose": False,
                "enqueue": True,
            }
        ]
    )


setupLogger("DEBUG")


def log_startup_info(settings):
    logger.log(
        "DMM",
        f"Server started on http://{settings.FASTAPI_HOST}:{settings.FASTAPI_PORT} - {settings.FASTAPI_WORKERS} workers",
    )

    if settings.DATABASE_TYPE == "sqlite":
        database_display = settings.DATABASE_PATH
    elif settings.is_database_configured:
        database_display = settings.DATABASE_URL.split("@")[-1]
    else:
        database_display = "not configured, serving empty results"
    logger.log(
        "DMM",
        f"Availability Store ({settings.DATABASE_TYPE}): {database_display} - Page Size: {settings.STORE_PAGE_SIZE}",
    )

    logger.log(
        "DMM",
        f"Rate Limiter: {settings.RATE_LIMIT_MAX_REQUESTS} requests / {settings.RATE_LIMIT_WINDOW}s per client",
    )
    logger.log(
        "DMM",
        f"Problem Keys: max age {settings.DMM_PROBLEM_MAX_AGE}s",
    )
    if not settings.is_problem_salt_configured:
        logger.warning(
            "DMM_PROBLEM_SALT is not set, using a random salt for this process only. "
            "Clients and other workers will not be able to solve problem keys."
        )
    logger.log(
        "DMM",
        f"Upstream: timeout={settings.UPSTREAM_REQUEST_TIMEOUT}s, interval={settings.UPSTREAM_MIN_REQUEST_INTERVAL}s, retries={settings.RATELIMIT_MAX_RETRIES} (base {settings.RATELIMIT_RETRY_BASE_DELAY}s, cap {settings.RATELIMIT_RETRY_MAX_DELAY}s)",
    )
    logger.log("DMM", f"Real-Debrid: {settings.REAL_DEBRID_URL}")
    logger.log(
        "DMM",
        f"Trakt: {settings.TRAKT_URL} - OAuth configured: {bool(settings.TRAKT_CLIENT_ID and settings.TRAKT_CLIENT_SECRET)}",
    )
