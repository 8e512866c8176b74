import sys
from loguru import logger
from app.core.config import LOG_LEVEL, LOG_FILE

def setup_logging() -> None:
    logger.remove()

    logger.add(
        sys.stdout,
        level=LOG_LEVEL,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

    # LOG_FILE="" keeps logs on stdout only
    if LOG_FILE:
        logger.add(
            LOG_FILE,
            rotation="10 MB",
            retention="14 days",
            level=LOG_LEVEL,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
        )

    logger.info("Logging initialized")
