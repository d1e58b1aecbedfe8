"""
One loguru sink for the whole service.

Module code keeps using `logging.getLogger(__name__)`; once the API starts,
the root logger and uvicorn's loggers hand their records to loguru, so
ingestion, enrichment and request logs come out in a single stream.
"""
import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _loguru_level(record: logging.LogRecord):
    try:
        return logger.level(record.levelname).name
    except ValueError:
        return record.levelno


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        # skip logging's own frames so loguru reports the real call site
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(_loguru_level(record), record.getMessage())


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stdout, level=level, format=LOG_FORMAT, colorize=sys.stdout.isatty(), enqueue=True)

    handler = InterceptHandler()
    logging.root.handlers = [handler]
    logging.root.setLevel(level)

    for name in list(logging.root.manager.loggerDict):
        if name in UVICORN_LOGGERS:
            continue
        existing = logging.getLogger(name)
        existing.handlers = []
        existing.propagate = True

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    logger.debug("Logging routed to loguru at level {}", level)
