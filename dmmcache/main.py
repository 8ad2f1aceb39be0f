import traceback

import uvicorn

from dmmcache.api.app import app
from dmmcache.core.logger import log_startup_info, logger, setupLogger
from dmmcache.core.models import settings


def run_with_uvicorn():
    """Run the server with uvicorn"""
    setupLogger(settings.LOG_LEVEL)

    config = uvicorn.Config(
        app,
        host=settings.FASTAPI_HOST,
        port=settings.FASTAPI_PORT,
        proxy_headers=True,
        forwarded_allow_ips="*",
        workers=settings.FASTAPI_WORKERS,
        log_config=None,
    )
    server = uvicorn.Server(config=config)

    log_startup_info(settings)
    try:
        server.run()
    except KeyboardInterrupt:
        logger.log("DMM", "Server stopped by user")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        logger.exception(traceback.format_exc())
    finally:
        logger.log("DMM", "Server Shutdown")


if __name__ == "__main__":
    run_with_uvicorn()
