import logging
import sys
from typing import List, Optional

import structlog
from structlog.types import EventDict, Processor

from docpipeline.core.config import settings

# Libraries that flood INFO/DEBUG with per-request noise
_QUIET_LOGGERS = (
    "uvicorn", "uvicorn.access", "botocore", "boto3", "s3transfer",
    "urllib3", "sqlalchemy.engine", "fitz",
)


def _service_tagger(service_name: str) -> Processor:
    def add_service(logger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        return event_dict
    return add_service


def _shared_processors(service_name: str, level: str) -> List[Processor]:
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _service_tagger(service_name),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if level == "DEBUG":
        processors.append(structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ))
    return processors


def setup_logging(service_name: str = "docpipeline-api", log_level: Optional[str] = None) -> None:
    """
    Routes structlog and stdlib logging through one JSON formatter on stdout.

    Every line carries `service` so API, worker and reconciliation output can be
    told apart once they share a log sink.
    """
    level = (log_level or settings.LOG_LEVEL).upper()
    shared = _shared_processors(service_name, level)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )

    root_logger = logging.getLogger()
    stdout_handlers = [
        h for h in root_logger.handlers
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
    ]
    if stdout_handlers:
        # Reuse the server's handler instead of printing every line twice
        for h in stdout_handlers:
            h.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info("Logging configured", log_level=level, service=service_name)
