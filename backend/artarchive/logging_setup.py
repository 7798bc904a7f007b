from __future__ import annotations
import logging, sys
import structlog
import structlog.stdlib
from artarchive.config import settings

# Chatty at INFO; request/response lines from the photo importer and blob client
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")


def configure_logging(level: str | None = None):
    level_no = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO
    timestamper = structlog.processors.TimeStamper(fmt="iso")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            timestamper,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        cache_logger_on_first_use=True,
    )
    # stdlib records (uvicorn, alembic) get the same JSON shape
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=[timestamper, structlog.stdlib.add_log_level, structlog.processors.EventRenamer("message")],
    ))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level_no)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level_no, logging.WARNING))
