import sys
from pathlib import Path

from loguru import logger


def configure_logging(level: str = "INFO", log_dir: str = "logs"):
    """Send loguru output to stderr and a daily rotating file under log_dir"""
    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        logger.add(
            str(Path(log_dir) / "daytrade_{time:YYYY-MM-DD}.log"),
            level=level,
            rotation="1 day",
            retention="7 days",
            enqueue=True,
        )
    return logger
