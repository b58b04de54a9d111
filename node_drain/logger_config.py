import sys

from loguru import logger

LOG_FORMAT = (
    "<cyan>{time:YYYY-MM-DDTHH:mm:ss}</cyan> | <level>{level: <8}</level> | "
    "{extra[name]} | <level>{message}</level>"
)

logger.configure(extra={"name": "node_drain"})


def configure_logging(level: str = "INFO") -> None:
    """Replace the default loguru sink with a single stderr sink"""
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)


def setup_logger(name: str):
    """Return a logger bound to the given component name"""
    return logger.bind(name=name)
