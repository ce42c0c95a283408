import logging
import structlog
import sys
from pathlib import Path
from .config import settings

_QUIET_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "apscheduler")

def _add_service(_, __, event_dict):
    event_dict.setdefault("service", "metrics-engine")
    return event_dict

def setup_logging(level: str | None = None, error_file: str | None = None):
    level_name = (level or settings.log_level or "INFO").upper()
    log_level = getattr(logging, level_name, logging.INFO)
    error_log_path = (settings.log_error_file if error_file is None else error_file).strip()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    formatter = logging.Formatter("%(message)s")
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    # Failed runs and rejected snapshot values also go to the error file
    if error_log_path:
        Path(error_log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(error_log_path)
        file_handler.setLevel(logging.ERROR)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_service,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(log_level)
